import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    timezone: str = Field("UTC", alias="STUDYTRACK_TIMEZONE")
    default_daily_start_time: str = Field("18:00", alias="STUDYTRACK_DEFAULT_START_TIME")
    morning_start_time: str = Field("09:00", alias="STUDYTRACK_MORNING_START_TIME")
    afternoon_start_time: str = Field("14:00", alias="STUDYTRACK_AFTERNOON_START_TIME")
    evening_start_time: str = Field("18:00", alias="STUDYTRACK_EVENING_START_TIME")
    max_horizon_days: int = Field(3650, ge=1, alias="STUDYTRACK_MAX_HORIZON_DAYS")
    max_minutes_per_event: int = Field(24 * 60, ge=1, alias="STUDYTRACK_MAX_MINUTES_PER_EVENT")
    stars_per_level: int = Field(20, ge=1, alias="STUDYTRACK_STARS_PER_LEVEL")
    database_url: Optional[str] = Field(None, alias="STUDYTRACK_DATABASE_URL")
    database_pool_size: int = Field(10, alias="STUDYTRACK_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="STUDYTRACK_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="STUDYTRACK_DATABASE_ECHO")
    persistence_mode: Literal["memory", "database"] = Field(
        "memory",
        alias="STUDYTRACK_PERSISTENCE_MODE",
    )

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    def start_time_for(self, time_of_day: Optional[str]) -> str:
        if time_of_day == "morning":
            return self.morning_start_time
        if time_of_day == "afternoon":
            return self.afternoon_start_time
        if time_of_day == "evening":
            return self.evening_start_time
        return self.default_daily_start_time


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid studytrack configuration: {exc}") from exc
