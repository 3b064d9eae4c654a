import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        mirror_url: str,
        mirror_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.mirror_url = mirror_url
        self.mirror_timeout_secs = mirror_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("HOUSEHOLD_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "household.db"
    database_url = os.getenv("HOUSEHOLD_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("HOUSEHOLD_TIMEZONE", "Asia/Seoul")
    mirror_url = os.getenv("HOUSEHOLD_MIRROR_URL", "").rstrip("/")
    mirror_timeout_secs = float(os.getenv("HOUSEHOLD_MIRROR_TIMEOUT_SECS", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        mirror_url=mirror_url,
        mirror_timeout_secs=mirror_timeout_secs,
    )
