import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        telegram_bot_token: Optional[str],
        telegram_chat_id: Optional[str],
        telegram_timeout_secs: float,
        reminder_hour: int,
        reminder_minute: int,
        limit_check_minutes: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.telegram_timeout_secs = telegram_timeout_secs
        self.reminder_hour = reminder_hour
        self.reminder_minute = reminder_minute
        self.limit_check_minutes = limit_check_minutes
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("SPENDWATCH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "spendwatch.db"
    database_url = os.getenv("SPENDWATCH_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("SPENDWATCH_TIMEZONE", "Europe/Moscow")
    telegram_bot_token = os.getenv("SPENDWATCH_TELEGRAM_BOT_TOKEN") or None
    telegram_chat_id = os.getenv("SPENDWATCH_TELEGRAM_CHAT_ID") or None
    telegram_timeout_secs = float(os.getenv("SPENDWATCH_TELEGRAM_TIMEOUT_SECS", "30"))
    reminder_hour = int(os.getenv("SPENDWATCH_REMINDER_HOUR", "20"))
    reminder_minute = int(os.getenv("SPENDWATCH_REMINDER_MINUTE", "0"))
    limit_check_minutes = int(os.getenv("SPENDWATCH_LIMIT_CHECK_MINUTES", "60"))
    scheduler_enabled = _env_flag("SPENDWATCH_SCHEDULER_ENABLED", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        telegram_timeout_secs=telegram_timeout_secs,
        reminder_hour=reminder_hour,
        reminder_minute=reminder_minute,
        limit_check_minutes=limit_check_minutes,
        scheduler_enabled=scheduler_enabled,
    )
