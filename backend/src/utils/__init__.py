"""
Utility modules for the notification core.

This package contains shared utilities used across the application:
- logging_config: Named structured loggers
- timezone_utils: User-local clock, date and quiet-hours math
- notification_cache: Atomic dedupe / daily cap primitives (Redis or in-memory)
"""
