from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    storage_backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = "training.db"
    max_value_size: int = Field(default=5_000_000, ge=1)
    page_size: int = Field(default=10, ge=1)
    similar_limit: int = Field(default=3, ge=0)
    recent_limit: int = Field(default=5, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    api_token: Optional[str] = None


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
