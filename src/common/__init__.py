"""
Common utilities for account-filter.

Modules:
- config: environment/SSM configuration for the dispatcher
- logging: structlog setup
- telegram: Telegram Bot API client used for notifications
"""

__all__ = [
    "config",
    "logging",
    "telegram",
]
