from .settings import (
    AlertSettings,
    NotificationSettings,
    PipelineSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AlertSettings",
    "NotificationSettings",
    "PipelineSettings",
    "Settings",
    "get_settings",
]
