# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain.

LearnPath does not issue credentials. Users sign in through the account
service, which hands out JWT access tokens; this domain verifies them.

Exports:
    JWTManager: JWT token validation (and creation for tooling).
    TokenPayload: Decoded access token claims.
"""

from src.domains.auth.jwt import (
    InvalidTokenError,
    JWTError,
    JWTManager,
    TokenExpiredError,
    TokenPayload,
)

__all__ = [
    "JWTManager",
    "TokenPayload",
    "JWTError",
    "TokenExpiredError",
    "InvalidTokenError",
]
