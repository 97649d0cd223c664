"""Configuration and constants."""

from ledger_resilience.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
