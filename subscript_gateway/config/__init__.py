"""Configuration package."""

from subscript_gateway.config.settings import (
    AppSettings,
    BackendSettings,
    ChatModelSettings,
    ImageModelSettings,
    RelaySettings,
    Settings,
    SyncSettings,
    VisionModelSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BackendSettings",
    "ChatModelSettings",
    "ImageModelSettings",
    "RelaySettings",
    "Settings",
    "SyncSettings",
    "VisionModelSettings",
    "get_settings",
    "validate_all_settings",
]
