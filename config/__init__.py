"""Configuration module for the AgentDesk knowledge core."""

from .settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
