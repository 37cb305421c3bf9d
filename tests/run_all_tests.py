#!/usr/bin/env python3
"""
Test runner for the Discord quiz game.
Runs all unit and integration tests and prints a summary report.
"""
import unittest
import sys
import time
from pathlib import Path

# Make the quiz_game and tests packages importable
sys.path.insert(0, str(Path(__file__).parent.parent))

CATEGORIES = {
    'engine': ['tests.test_game_engine'],
    'timer': ['tests.test_game_timer'],
    'store': ['tests.test_score_store'],
    'bank': ['tests.test_question_bank'],
    'config': ['tests.test_config_manager'],
    'controller': ['tests.test_game_controller'],
    'bot': ['tests.test_bot_discord_integration'],
    'main': ['tests.test_main'],
}
CATEGORIES['unit'] = [
    'tests.test_game_engine',
    'tests.test_game_timer',
    'tests.test_score_store',
    'tests.test_question_bank',
    'tests.test_config_manager',
    'tests.test_main',
]
CATEGORIES['integration'] = ['tests.test_game_controller', 'tests.test_bot_discord_integration']

ALL_MODULES = CATEGORIES['unit'] + CATEGORIES['integration']


def load_suite(module_names):
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()
    for module_name in module_names:
        try:
            suite.addTest(loader.loadTestsFromName(module_name))
            print(f"✓ Loaded tests from {module_name}")
        except Exception as e:
            print(f"✗ Failed to load {module_name}: {e}")
    return suite


def run_test_suite(module_names=ALL_MODULES):
    """Run the given test modules and print a summary report."""
    print("=" * 70)
    print("Discord Quiz Game - Test Suite")
    print("=" * 70)

    suite = load_suite(module_names)

    print("\n" + "=" * 70)
    print("Running Tests...")
    print("=" * 70)

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout, buffer=True)
    start_time = time.time()
    result = runner.run(suite)
    end_time = time.time()

    print("\n" + "=" * 70)
    print("Test Summary Report")
    print("=" * 70)

    total_tests = result.testsRun
    failures = len(result.failures)
    errors = len(result.errors)
    skipped = len(result.skipped)
    passed = total_tests - failures - errors - skipped

    print(f"Total Tests Run: {total_tests}")
    print(f"Passed: {passed}")
    print(f"Failed: {failures}")
    print(f"Errors: {errors}")
    print(f"Skipped: {skipped}")
    print(f"Success Rate: {(passed/total_tests)*100:.1f}%" if total_tests > 0 else "N/A")
    print(f"Execution Time: {end_time - start_time:.2f} seconds")

    for label, problems in (("FAILURES", result.failures), ("ERRORS", result.errors)):
        if problems:
            print("\n" + "-" * 50)
            print(f"{label}:")
            print("-" * 50)
            for test, traceback in problems:
                print(f"\n{test}:")
                print(traceback)

    return failures == 0 and errors == 0


def run_specific_test_category(category):
    """Run tests for a specific category."""
    if category not in CATEGORIES:
        print(f"Unknown category: {category}")
        print(f"Available categories: {', '.join(CATEGORIES.keys())}")
        return False

    print(f"Running {category} tests...")
    return run_test_suite(CATEGORIES[category])


if __name__ == '__main__':
    if len(sys.argv) > 1:
        success = run_specific_test_category(sys.argv[1])
    else:
        success = run_test_suite()

    sys.exit(0 if success else 1)
