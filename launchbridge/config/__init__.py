"""Configuration module for launchbridge."""

from launchbridge.config.loader import load_config, get_config_path, save_config
from launchbridge.config.schema import BridgeConfig
from launchbridge.config.access import get_config, clear_config_cache
from launchbridge.config.settings import SettingsStore

__all__ = [
    "BridgeConfig",
    "SettingsStore",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
