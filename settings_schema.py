from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    cache_path: str = "workouts.json"
    draft_db_path: str = "drafts.db"
    api_url: str = "http://localhost:8000"
    user_id: Optional[str] = None
    api_token: Optional[str] = None
    poll_interval: float = Field(5.0, gt=0)
    week_start: int = Field(0, ge=0, le=6)
    log_level: str = "INFO"


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
