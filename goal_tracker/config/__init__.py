"""
Configuration for the goal tracker service.
"""
from .settings import (
    BotConfig,
    StorageConfig,
    ScheduleConfig,
    DeliveryConfig,
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    'BotConfig', 'StorageConfig', 'ScheduleConfig', 'DeliveryConfig',
    'Settings', 'get_settings', 'load_settings'
]
