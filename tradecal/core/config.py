from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_JWT_SECRET: str | None = None

    FRONTEND_ORIGINS: List[str] = [
        "http://localhost:3000",
    ]

    # Every trade timestamp is bucketed into a calendar day in this zone.
    CALENDAR_TIMEZONE: str = "UTC"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @field_validator("CALENDAR_TIMEZONE")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v!r}")
        return v

    @property
    def calendar_tz(self) -> ZoneInfo:
        return ZoneInfo(self.CALENDAR_TIMEZONE)


@lru_cache
def get_settings() -> Settings:
    return Settings()
