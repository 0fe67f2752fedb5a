# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for LearnPath.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from src.core.config.settings import (
    APISettings,
    CORSSettings,
    GraderSettings,
    JWTSettings,
    ProgressSettings,
    RedisSettings,
    Settings,
    TenantDatabaseSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "TenantDatabaseSettings",
    "RedisSettings",
    "GraderSettings",
    "ProgressSettings",
    "JWTSettings",
    "CORSSettings",
    "APISettings",
]
