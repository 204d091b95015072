"""File-backed stores for operator settings and the notification log."""

from .notification_log import NotificationLogRepository, NotificationRecord
from .settings_store import DEFAULT_SETTINGS, SettingsStore, StoreSettings

__all__ = [
    "DEFAULT_SETTINGS",
    "NotificationLogRepository",
    "NotificationRecord",
    "SettingsStore",
    "StoreSettings",
]
