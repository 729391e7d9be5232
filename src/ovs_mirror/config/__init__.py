"""Global settings."""
from .settings import Settings, DEFAULT_RULES_FILE, DEFAULT_SETTINGS_FILE

__all__ = ["Settings", "DEFAULT_RULES_FILE", "DEFAULT_SETTINGS_FILE"]
