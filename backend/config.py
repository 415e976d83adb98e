from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Noor SRS"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'noor_srs.db'}"
    interval_modifier: float = 1.0  # Scales review-state interval growth only
    max_cards_per_session: int = 20
    weak_area_window_days: int = 30
    recommendation_window_days: int = 7
    max_recommendations: int = 30
    debug: bool = False

    model_config = {"env_prefix": "NOOR_SRS_", "env_file": ".env"}


settings = Settings()
