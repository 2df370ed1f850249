import logging
from typing import List

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException

from db import AsyncWorkoutDocumentRepository
from models import WorkoutRecord
from stats_service import compute_stats

logger = logging.getLogger(__name__)


class LedgerAPI:
    """Provides REST endpoints hosting per-user workout collections."""

    def __init__(
        self,
        db_path: str = "ledger.db",
        *,
        api_token: str | None = None,
        week_start: int = 0,
    ) -> None:
        self.db_path = db_path
        self.api_token = api_token
        self.week_start = week_start
        self.documents = AsyncWorkoutDocumentRepository(db_path)
        self.app = FastAPI(
            title="Workout Ledger API",
            description="Per-user workout document collections",
        )
        self._setup_routes()

    def _check_token(self, x_api_key: str | None = Header(None)) -> None:
        if self.api_token is not None and x_api_key != self.api_token:
            raise HTTPException(status_code=401, detail="invalid api key")

    def _setup_routes(self) -> None:
        workouts_router = APIRouter(
            prefix="/users/{user_id}",
            tags=["Workouts"],
            dependencies=[Depends(self._check_token)],
        )

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        async def health():
            """Return API and database connection status."""
            try:
                await self.documents.fetch_documents("")
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @workouts_router.get("/workouts")
        async def list_workouts(user_id: str):
            return await self.documents.fetch_documents(user_id)

        @workouts_router.put("/workouts/{workout_id}")
        async def put_workout(user_id: str, workout_id: str, document: dict = Body(...)):
            try:
                record = WorkoutRecord.from_dict(document)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if record.id != workout_id:
                raise HTTPException(status_code=400, detail="id mismatch")
            await self.documents.upsert(user_id, record)
            return {"status": "saved"}

        @workouts_router.delete("/workouts/{workout_id}")
        async def delete_workout(user_id: str, workout_id: str):
            await self.documents.delete(user_id, workout_id)
            return {"status": "deleted"}

        @workouts_router.post("/workouts/batch")
        async def put_batch(user_id: str, documents: List[dict] = Body(...)):
            records: list[WorkoutRecord] = []
            skipped = 0
            for doc in documents:
                try:
                    records.append(WorkoutRecord.from_dict(doc))
                except ValueError as e:
                    logger.warning("Skipping workout in batch for %s: %s", user_id, e)
                    skipped += 1
            saved = await self.documents.upsert_many(user_id, records)
            return {"saved": saved, "skipped": skipped}

        @workouts_router.get("/stats")
        async def user_stats(user_id: str):
            records = await self.documents.fetch_records(user_id)
            return compute_stats(records, week_start=self.week_start).to_dict()

        self.app.include_router(workouts_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(LedgerAPI().app)
