"""
Leaderboard persistence over a small key-value backend.

Reads never fail from the caller's point of view: a missing, malformed or
unreachable leaderboard is an empty one. Writes are best-effort and report
success as a boolean.
"""
import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import StoreUnavailableError
from .models import LeaderboardEntry

logger = logging.getLogger(__name__)


def leaderboard_key(category: str) -> str:
    return f"leaderboard_{category}"


class KeyValueBackend:
    """Minimal string key-value surface the score store is written against."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def probe(self) -> bool:
        """Check once whether the backend can be read and written."""
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    """In-process backend, used when nothing needs to outlive the process."""

    def __init__(self, available: bool = True):
        self._data: Dict[str, str] = {}
        self.available = available

    def get(self, key: str) -> Optional[str]:
        if not self.available:
            raise StoreUnavailableError("memory backend disabled")
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not self.available:
            raise StoreUnavailableError("memory backend disabled")
        self._data[key] = value

    def probe(self) -> bool:
        return self.available


class JsonFileBackend(KeyValueBackend):
    """Stores every key in a single JSON object on disk."""

    def __init__(self, path: str = "./data/leaderboards.json"):
        self.path = Path(path)

    def _read_all(self, discard_malformed: bool = False) -> Dict[str, str]:
        """
        Read the whole key-value object.

        Args:
            discard_malformed: Move an unparsable file aside and start empty
                instead of raising

        Raises:
            StoreUnavailableError: If the file can't be read, or is malformed
                and discard_malformed is False
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read {self.path}: {e}") from e
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            problem = f"invalid JSON: {e}"
        else:
            if isinstance(data, dict):
                return data
            problem = "not a JSON object"

        if not discard_malformed:
            raise StoreUnavailableError(f"{self.path} is malformed: {problem}")

        self._set_aside_malformed(problem)
        return {}

    def _set_aside_malformed(self, problem: str) -> None:
        corrupt_path = self.path.with_suffix(self.path.suffix + ".corrupt")
        try:
            os.replace(self.path, corrupt_path)
        except OSError as e:
            logger.error(f"Could not move malformed {self.path} aside: {e}")
            return
        logger.warning(
            f"Leaderboard file {self.path} was malformed ({problem}), moved to {corrupt_path}",
            extra={
                'event_type': 'leaderboard_file_reset',
                'path': str(self.path),
                'corrupt_path': str(corrupt_path),
                'timestamp': time.time()
            }
        )

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all(discard_malformed=True)
        data[key] = value
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {self.path}: {e}") from e

    def probe(self) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False

        if self.path.exists():
            return os.access(self.path, os.R_OK | os.W_OK)
        return os.access(self.path.parent, os.W_OK)


class ScoreStore:
    """Per-category leaderboards, sorted descending by score."""

    def __init__(self, backend: KeyValueBackend):
        """
        Initialize the store and probe the backend once.

        Args:
            backend: Key-value storage the leaderboards are kept in
        """
        self.backend = backend
        try:
            self.available = bool(backend.probe())
        except Exception as e:
            logger.error(f"Score store probe raised: {e}")
            self.available = False

        if self.available:
            logger.info(f"Score store ready ({type(backend).__name__})")
        else:
            logger.warning(
                f"Score store unavailable ({type(backend).__name__}), leaderboards will not persist",
                extra={
                    'event_type': 'score_store_unavailable',
                    'backend': type(backend).__name__,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def sort_entries(entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
        """Sort descending by score; ties keep their relative order."""
        return sorted(entries, key=lambda entry: entry.score, reverse=True)

    def load_leaderboard(self, category: str) -> List[LeaderboardEntry]:
        """
        Load the leaderboard of a category.

        Returns:
            Entries sorted descending by score, empty if none can be read
        """
        if not self.available:
            return []

        key = leaderboard_key(category)
        try:
            raw = self.backend.get(key)
        except StoreUnavailableError as e:
            logger.warning(f"Leaderboard read failed for '{category}': {e}")
            return []

        if raw is None:
            return []

        try:
            records = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed leaderboard stored under {key}: {e}")
            return []

        if not isinstance(records, list):
            logger.warning(f"Leaderboard stored under {key} is not an array")
            return []

        entries = []
        for record in records:
            if (isinstance(record, dict)
                    and isinstance(record.get("name"), str)
                    and isinstance(record.get("score"), int)
                    and not isinstance(record.get("score"), bool)):
                entries.append(LeaderboardEntry(name=record["name"], score=record["score"]))
            else:
                logger.debug(f"Skipping malformed leaderboard record under {key}: {record!r}")

        return self.sort_entries(entries)

    def save_leaderboard(self, category: str, entries: Iterable[LeaderboardEntry]) -> bool:
        """
        Persist the leaderboard of a category, best-effort.

        Returns:
            True if the write succeeded, False otherwise
        """
        if not self.available:
            logger.debug(f"Dropping leaderboard write for '{category}': store unavailable")
            return False

        ordered = self.sort_entries(entries)
        payload = json.dumps([entry.to_dict() for entry in ordered], ensure_ascii=False)
        try:
            self.backend.set(leaderboard_key(category), payload)
        except StoreUnavailableError as e:
            logger.error(
                f"Leaderboard write failed for '{category}': {e}",
                extra={
                    'event_type': 'leaderboard_write_failed',
                    'category': category,
                    'timestamp': time.time()
                }
            )
            return False

        logger.debug(f"Saved {len(ordered)} leaderboard entries for '{category}'")
        return True

    def record_score(self, category: str, name: str, score: int) -> List[LeaderboardEntry]:
        """
        Append a result to the category leaderboard and persist it.

        Returns:
            The updated leaderboard, even if it could not be persisted
        """
        entries = self.load_leaderboard(category)
        entries.append(LeaderboardEntry(name=name, score=score))
        entries = self.sort_entries(entries)
        self.save_leaderboard(category, entries)
        return entries

    def get_highest_score(self, category: str) -> int:
        entries = self.load_leaderboard(category)
        return entries[0].score if entries else 0
