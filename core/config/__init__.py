"""
설정 패키지
"""

from core.config.loader import (
    BackendConfig,
    RatesConfig,
    LedgerConfig,
    StorageConfig,
    Settings,
    SettingsLoadError,
    load_settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "BackendConfig",
    "RatesConfig",
    "LedgerConfig",
    "StorageConfig",
    "Settings",
    "SettingsLoadError",
    "load_settings",
    "get_settings",
    "reset_settings",
]
