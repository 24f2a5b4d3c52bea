"""
Environment-driven settings for the goal tracker service.

Values are read from the process environment after loading .env.local.
Every section is a plain dataclass so tests can build one directly.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv('.env.local')

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = 'true') -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass
class BotConfig:
    """Bot Framework registration and deep-link settings"""
    app_id: Optional[str] = None
    app_password: Optional[str] = None
    tenant_id: Optional[str] = None
    app_base_uri: str = ""
    manifest_id: str = ""
    goals_tab_entity_id: str = ""

    @property
    def goals_tab_url(self) -> str:
        return f"https://teams.microsoft.com/l/entity/{self.manifest_id}/{self.goals_tab_entity_id}"


@dataclass
class StorageConfig:
    """Azure Table storage settings"""
    connection_string: Optional[str] = None

    @property
    def use_table_storage(self) -> bool:
        return bool(self.connection_string)


@dataclass
class ScheduleConfig:
    """Background loop cadence"""
    reminder_cron: str = "0 * * * *"
    deletion_sweep_cron: str = "0 0 * * 0"
    enable_reminder_scheduler: bool = True
    enable_deletion_sweeper: bool = True
    task_queue_drain_timeout: float = 10.0


@dataclass
class DeliveryConfig:
    """Proactive delivery retry policy"""
    retry_count: int = 2
    median_first_delay: float = 1.0


@dataclass
class Settings:
    bot: BotConfig = field(default_factory=BotConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    log_level: str = "INFO"
    api_key: Optional[str] = None


def load_settings() -> Settings:
    """Build settings from environment variables."""
    settings = Settings(
        bot=BotConfig(
            app_id=os.getenv("MICROSOFT_APP_ID"),
            app_password=os.getenv("MICROSOFT_APP_PASSWORD"),
            tenant_id=os.getenv("MICROSOFT_APP_TENANT_ID"),
            app_base_uri=os.getenv("APP_BASE_URI", ""),
            manifest_id=os.getenv("MANIFEST_ID", ""),
            goals_tab_entity_id=os.getenv("GOALS_TAB_ENTITY_ID", "")
        ),
        storage=StorageConfig(
            connection_string=os.getenv("STORAGE_CONNECTION_STRING") or None
        ),
        schedule=ScheduleConfig(
            reminder_cron=os.getenv("REMINDER_SCHEDULE_CRON", "0 * * * *"),
            deletion_sweep_cron=os.getenv("DELETION_SWEEP_CRON", "0 0 * * 0"),
            enable_reminder_scheduler=_env_flag("ENABLE_REMINDER_SCHEDULER"),
            enable_deletion_sweeper=_env_flag("ENABLE_DELETION_SWEEPER"),
            task_queue_drain_timeout=float(os.getenv("TASK_QUEUE_DRAIN_TIMEOUT_SECONDS", "10"))
        ),
        delivery=DeliveryConfig(
            retry_count=int(os.getenv("DELIVERY_RETRY_COUNT", "2")),
            median_first_delay=float(os.getenv("DELIVERY_RETRY_MEDIAN_DELAY_SECONDS", "1.0"))
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        api_key=os.getenv("API_KEY") or None
    )

    if not settings.storage.use_table_storage:
        logger.warning("STORAGE_CONNECTION_STRING not set - using in-memory storage")

    return settings


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
