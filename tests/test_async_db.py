import os
import sys
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import AsyncWorkoutDocumentRepository, DraftRepository, sort_key
from models import ExerciseEntry, SetEntry, WorkoutDraft, WorkoutRecord

UTC = datetime.timezone.utc


def make_workout(name: str, when: datetime.datetime) -> WorkoutRecord:
    return WorkoutRecord(
        name=name, date=when, exercises=[ExerciseEntry("Press", [SetEntry("8", "40")])]
    )


@pytest.mark.asyncio
async def test_async_document_repo(tmp_path):
    repo = AsyncWorkoutDocumentRepository(str(tmp_path / "ledger.db"))
    older = make_workout("Older", datetime.datetime(2024, 1, 1, 8, tzinfo=UTC))
    newer = make_workout("Newer", datetime.datetime(2024, 1, 1, 8, 0, 0, 500, tzinfo=UTC))
    await repo.upsert("u1", older)
    await repo.upsert("u1", newer)
    records = await repo.fetch_records("u1")
    assert [r.name for r in records] == ["Newer", "Older"]
    older.name = "Renamed"
    await repo.upsert("u1", older)
    docs = await repo.fetch_documents("u1")
    assert [d["name"] for d in docs] == ["Newer", "Renamed"]
    await repo.delete("u1", newer.id)
    assert [r.id for r in await repo.fetch_records("u1")] == [older.id]
    assert await repo.fetch_documents("u2") == []


@pytest.mark.asyncio
async def test_async_upsert_many(tmp_path):
    repo = AsyncWorkoutDocumentRepository(str(tmp_path / "ledger.db"))
    base = datetime.datetime(2024, 3, 1, tzinfo=UTC)
    records = [make_workout(f"W{i}", base + datetime.timedelta(days=i)) for i in range(3)]
    assert await repo.upsert_many("u1", records) == 3
    assert await repo.upsert_many("u1", []) == 0
    assert [r.name for r in await repo.fetch_records("u1")] == ["W2", "W1", "W0"]


def test_sort_key_normalizes_timezone():
    tz = datetime.timezone(datetime.timedelta(hours=2))
    local = datetime.datetime(2024, 1, 1, 1, tzinfo=tz)
    utc = datetime.datetime(2023, 12, 31, 23, 30, tzinfo=UTC)
    assert sort_key(local) < sort_key(utc)
    assert sort_key(utc) == "2023-12-31T23:30:00.000000Z"


def test_draft_repository(tmp_path):
    repo = DraftRepository(str(tmp_path / "drafts.db"))
    assert repo.load() is None
    assert not repo.has_draft()
    draft = WorkoutDraft("Legs", exercises=[ExerciseEntry("Squat", [SetEntry("5", "140")])])
    repo.save(draft)
    assert repo.has_draft()
    loaded = repo.load()
    assert loaded.workout_name == "Legs"
    assert loaded.exercises == draft.exercises
    draft.workout_name = "Legs 2"
    repo.save(draft)
    assert repo.load().workout_name == "Legs 2"
    repo.clear()
    assert repo.load() is None


def test_corrupt_draft_is_discarded(tmp_path):
    repo = DraftRepository(str(tmp_path / "drafts.db"))
    repo.execute(
        "INSERT INTO drafts (key, data, updated_at) VALUES (?, ?, ?);",
        (DraftRepository.KEY, "{broken", "now"),
    )
    assert repo.load() is None
    assert not repo.has_draft()
