"""
Question bank loader for JSON category files and question validation.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Question, QuestionType


class QuestionBank:
    """Loads, validates and serves the read-only category -> questions mapping."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    def __init__(self, bank_path: str = "./questions.json"):
        """
        Initialize QuestionBank with the path of the JSON question file.

        Args:
            bank_path: Path to a JSON object mapping category names to question lists
        """
        self.bank_path = Path(bank_path)
        self.categories: Dict[str, List[Question]] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []
        self.fallback_bank_created = False

    def load(self) -> Dict[str, List[Question]]:
        """
        Load the question file with comprehensive error handling.

        Invalid question records are skipped; a category left without any valid
        question is dropped. When nothing usable can be read, a small built-in
        bank is loaded instead so the game stays playable.

        Returns:
            Dictionary mapping category names to lists of Question objects
        """
        self.categories.clear()
        self.load_errors.clear()
        self.fallback_bank_created = False

        raw = self._read_bank_file()
        if raw is None:
            return self._create_fallback_bank()

        return self.load_from_mapping(raw)

    def load_from_mapping(self, raw: Any) -> Dict[str, List[Question]]:
        """
        Load categories from an already-parsed mapping.

        Args:
            raw: Parsed JSON data

        Returns:
            Dictionary mapping category names to lists of Question objects
        """
        if not self.validate_bank_structure(raw):
            self.load_errors.append("Question bank must be an object of category -> question list")
            return self._create_fallback_bank()

        for category, records in raw.items():
            questions = self._parse_category(category, records)
            if questions:
                self.categories[category] = questions
                self.logger.info(f"Loaded category '{category}' with {len(questions)} questions")
            else:
                self.load_errors.append(f"{category}: no valid questions")

        if not self.categories:
            self.logger.error("No category could be loaded from the question bank")
            return self._create_fallback_bank()

        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} question bank errors")
        return self.categories

    def _read_bank_file(self) -> Optional[dict]:
        """
        Read and parse the question file.

        Returns:
            Parsed JSON data or None if reading failed
        """
        try:
            if not self.bank_path.exists():
                self.load_errors.append(f"Question bank not found: {self.bank_path}")
                self.logger.warning(f"Question bank not found: {self.bank_path}")
                return None

            if not os.access(self.bank_path, os.R_OK):
                self.load_errors.append(f"Permission denied: Cannot read {self.bank_path}")
                return None

            file_size = self.bank_path.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                self.load_errors.append(
                    f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                    f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                )
                return None

            with open(self.bank_path, 'r', encoding='utf-8') as f:
                return json.load(f)

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {self.bank_path}: {e}")
            self.load_errors.append(f"Invalid JSON: {e}")
            return None
        except OSError as e:
            self.logger.error(f"Failed to read question bank {self.bank_path}: {e}")
            self.load_errors.append(f"System error: {e}")
            return None

    def validate_bank_structure(self, data: Any) -> bool:
        """
        Validate the top-level shape of the bank.

        Expected structure:
        {
            "science": [
                {
                    "type": "mcq" | "fill" | "riddle",
                    "content": str,
                    "options": list,  # Required for mcq
                    "answer": str,
                    "hint": str
                }
            ]
        }
        """
        if not isinstance(data, dict) or not data:
            self.logger.error("Question bank must be a non-empty JSON object")
            return False

        for category, records in data.items():
            if not isinstance(category, str) or not category.strip():
                self.logger.error("Category names must be non-empty strings")
                return False
            if not isinstance(records, list):
                self.logger.error(f"Category '{category}' must map to an array")
                return False
        return True

    def validate_question(self, category: str, index: int, data: Any) -> Optional[str]:
        """
        Validate one question record.

        Returns:
            An error description, or None when the record is valid
        """
        if not isinstance(data, dict):
            return f"{category}[{index}] must be an object"

        for key in ("type", "content", "answer"):
            if key not in data:
                return f"{category}[{index}] missing '{key}' field"
            if not isinstance(data[key], str):
                return f"{category}[{index}] '{key}' field must be a string"

        try:
            question_type = QuestionType(data["type"])
        except ValueError:
            return f"{category}[{index}] has unknown type '{data['type']}'"

        if not data["answer"].strip():
            return f"{category}[{index}] 'answer' cannot be empty"

        if "hint" in data and not isinstance(data["hint"], str):
            return f"{category}[{index}] 'hint' field must be a string"

        options = data.get("options")
        if question_type is QuestionType.MCQ:
            if not isinstance(options, list) or not options:
                return f"{category}[{index}] mcq question requires a non-empty 'options' array"
            if not all(isinstance(option, str) for option in options):
                return f"{category}[{index}] 'options' must contain strings"
        elif options is not None and not isinstance(options, list):
            return f"{category}[{index}] 'options' field must be an array"

        return None

    def _parse_category(self, category: str, records: List[Any]) -> List[Question]:
        """Parse the valid records of a category into Question objects."""
        questions = []

        for index, data in enumerate(records):
            error = self.validate_question(category, index, data)
            if error:
                self.logger.error(error)
                self.load_errors.append(error)
                continue

            question_type = QuestionType(data["type"])
            options = tuple(data.get("options") or ()) if question_type is QuestionType.MCQ else ()
            questions.append(Question(
                type=question_type,
                content=data["content"],
                answer=data["answer"],
                hint=data.get("hint", ""),
                options=options
            ))

        return questions

    def get_categories(self) -> List[str]:
        """Get the list of playable category names."""
        return list(self.categories.keys())

    def get_questions(self, category: str) -> Optional[List[Question]]:
        """
        Retrieve the questions of a category.

        Returns:
            List of Question objects, or None if the category is unknown
        """
        questions = self.categories.get(category)
        return list(questions) if questions is not None else None

    def category_exists(self, category: str) -> bool:
        return category in self.categories

    def get_question_count(self, category: str) -> int:
        questions = self.categories.get(category)
        return len(questions) if questions else 0

    def _create_fallback_bank(self) -> Dict[str, List[Question]]:
        """
        Create a minimal in-memory bank when the question file can't be used.

        Returns:
            Dictionary with the fallback category loaded
        """
        self.categories.clear()
        self.categories["general"] = [
            Question(
                type=QuestionType.MCQ,
                content="What is the capital of France?",
                answer="Paris",
                hint="It is known as the city of light.",
                options=("London", "Berlin", "Paris", "Madrid")
            ),
            Question(
                type=QuestionType.FILL,
                content="2 + 2 = ?",
                answer="4",
                hint="Count on your fingers."
            ),
            Question(
                type=QuestionType.RIDDLE,
                content="What has keys but can't open locks?",
                answer="Piano",
                hint="It makes music."
            ),
        ]
        self.fallback_bank_created = True
        self.logger.warning("Created fallback question bank due to loading failures")
        return self.categories

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_bank_active(self) -> bool:
        return self.fallback_bank_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last load operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_categories': len(self.categories),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_bank_active(),
            'bank_path': str(self.bank_path),
            'available_categories': self.get_categories()
        }
