from __future__ import annotations
import datetime
import enum
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from tools import MathTools


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value) -> datetime.datetime:
    """Return ``value`` as timezone-aware datetime, naive values taken as UTC."""
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def _require(data: dict, key: str):
    if not isinstance(data, dict):
        raise ValueError(f"expected object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise ValueError(f"missing field: {key}")
    return data[key]


class SyncStatus(str, enum.Enum):
    """Last known connectivity of the sync coordinator."""

    ONLINE = "online"
    OFFLINE = "offline"
    SYNCING = "syncing"


@dataclass
class SetEntry:
    reps: str = ""
    weight: str = ""
    rpe: str = ""
    is_completed: bool = False
    is_warmup: bool = False
    is_drop_set: bool = False
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reps": str(self.reps),
            "weight": str(self.weight),
            "rpe": str(self.rpe),
            "is_completed": bool(self.is_completed),
            "is_warmup": bool(self.is_warmup),
            "is_drop_set": bool(self.is_drop_set),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SetEntry":
        if not isinstance(data, dict):
            raise ValueError("set entry must be an object")
        return cls(
            reps=str(data.get("reps", "")),
            weight=str(data.get("weight", "")),
            rpe=str(data.get("rpe", "")),
            is_completed=bool(data.get("is_completed", False)),
            is_warmup=bool(data.get("is_warmup", False)),
            is_drop_set=bool(data.get("is_drop_set", False)),
            id=str(data.get("id") or _new_id()),
        )


@dataclass
class ExerciseEntry:
    name: str
    sets: List[SetEntry] = field(default_factory=list)
    notes: str = ""
    id: str = field(default_factory=_new_id)

    @property
    def volume(self) -> float:
        return MathTools.volume((s.reps, s.weight) for s in self.sets)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sets": [s.to_dict() for s in self.sets],
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExerciseEntry":
        name = _require(data, "name")
        sets = data.get("sets") or []
        if not isinstance(sets, list):
            raise ValueError("sets must be a list")
        return cls(
            name=str(name),
            sets=[SetEntry.from_dict(s) for s in sets],
            notes=str(data.get("notes") or ""),
            id=str(data.get("id") or _new_id()),
        )


@dataclass
class WorkoutRecord:
    """A finalized workout session, the unit stored in the ledger."""

    name: str
    date: datetime.datetime = field(default_factory=_utcnow)
    exercises: List[ExerciseEntry] = field(default_factory=list)
    is_favorite: bool = False
    id: str = field(default_factory=_new_id)

    @property
    def total_volume(self) -> float:
        return sum(e.volume for e in self.exercises)

    @property
    def total_sets(self) -> int:
        return sum(len(e.sets) for e in self.exercises)

    def to_dict(self) -> dict:
        if not isinstance(self.date, datetime.datetime):
            raise TypeError(f"workout {self.id} has no valid date")
        return {
            "id": self.id,
            "name": self.name,
            "date": parse_timestamp(self.date).isoformat(),
            "exercises": [e.to_dict() for e in self.exercises],
            "is_favorite": bool(self.is_favorite),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutRecord":
        record_id = _require(data, "id")
        name = _require(data, "name")
        exercises = data.get("exercises") or []
        if not isinstance(exercises, list):
            raise ValueError("exercises must be a list")
        return cls(
            id=str(record_id),
            name=str(name),
            date=parse_timestamp(_require(data, "date")),
            exercises=[ExerciseEntry.from_dict(e) for e in exercises],
            is_favorite=bool(data.get("is_favorite", False)),
        )


@dataclass
class WorkoutDraft:
    """The single in-progress workout kept by draft autosave."""

    workout_name: str = ""
    start_time: datetime.datetime = field(default_factory=_utcnow)
    exercises: List[ExerciseEntry] = field(default_factory=list)
    last_modified: datetime.datetime = field(default_factory=_utcnow)

    def to_record(self) -> WorkoutRecord:
        return WorkoutRecord(
            name=self.workout_name.strip() or "Workout",
            date=self.start_time,
            exercises=list(self.exercises),
        )

    def to_dict(self) -> dict:
        return {
            "workout_name": self.workout_name,
            "start_time": parse_timestamp(self.start_time).isoformat(),
            "exercises": [e.to_dict() for e in self.exercises],
            "last_modified": parse_timestamp(self.last_modified).isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutDraft":
        start = parse_timestamp(_require(data, "start_time"))
        modified = data.get("last_modified")
        return cls(
            workout_name=str(data.get("workout_name") or ""),
            start_time=start,
            exercises=[ExerciseEntry.from_dict(e) for e in data.get("exercises") or []],
            last_modified=parse_timestamp(modified) if modified else start,
        )


@dataclass(frozen=True)
class WorkoutStats:
    total_workouts: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_volume: float = 0.0
    total_sets: int = 0
    total_exercises: int = 0
    favorite_exercise: Optional[str] = None
    workouts_this_week: int = 0
    workouts_this_month: int = 0

    def to_dict(self) -> dict:
        return {
            "total_workouts": self.total_workouts,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "total_volume": self.total_volume,
            "total_sets": self.total_sets,
            "total_exercises": self.total_exercises,
            "favorite_exercise": self.favorite_exercise,
            "workouts_this_week": self.workouts_this_week,
            "workouts_this_month": self.workouts_this_month,
        }
