"""
Configuration module for the notification core.

Provides centralized configuration for:
- Gatekeeper policy (daily cap, fallback timezone, kill-switch)
- Expo push gateway endpoints
- Scheduler switches
"""

from backend.src.config.settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "get_settings",
]
