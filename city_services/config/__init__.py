"""Configuration package for runtime settings and startup validation."""

from .settings import CitySettings, SettingsLoadError, config_load_database_url, config_load_settings

__all__ = ["CitySettings", "SettingsLoadError", "config_load_settings", "config_load_database_url"]
