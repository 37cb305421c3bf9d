"""
Single-player quiz game: a timed question state machine with per-category leaderboards.
"""
