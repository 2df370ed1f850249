import json
import logging
import os
import tempfile
from typing import Iterable, List

from models import WorkoutRecord

logger = logging.getLogger(__name__)


class CacheWriteError(Exception):
    """Raised when the workout cache file could not be replaced."""


class LocalCacheStore:
    """Persist the whole workout list to a single JSON file."""

    def __init__(self, path: str = "workouts.json") -> None:
        self.path = path

    def load(self) -> List[WorkoutRecord]:
        """Return cached workouts, or an empty list if none can be read."""
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("cache root must be a list")
            return [WorkoutRecord.from_dict(item) for item in data]
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable workout cache %s: %s", self.path, e)
            return []

    def save(self, records: Iterable[WorkoutRecord]) -> None:
        """Atomically replace the cache file with ``records``."""
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            payload = json.dumps([r.to_dict() for r in records])
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".workouts-", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise CacheWriteError(f"could not write {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
