# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""JWT token management utilities.

Access tokens are issued by the account service; LearnPath only verifies
them and reads the caller's identity from the claims. Token creation is
kept for tooling and tests that need a signed token.

Example:
    >>> from src.core.config import get_settings
    >>> jwt_manager = JWTManager(get_settings().jwt)
    >>> token = jwt_manager.create_access_token(user_id="user-123", ...)
    >>> claims = jwt_manager.decode_token(token)
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel, ValidationError

from src.core.config.settings import JWTSettings

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """JWT token payload structure.

    Attributes:
        sub: Subject (user ID, also the student ID for students).
        type: Token type.
        tenant_code: Tenant code for routing.
        user_type: Role (student, professor, school_admin, super_admin).
        school_ids: Schools the user belongs to.
        year: Academic year of a student.
        preferred_language: User's preferred language code.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
        jti: JWT ID for token tracking.
    """

    sub: str
    type: Literal["access", "refresh"] = "access"
    tenant_code: str | None = None
    user_type: str
    school_ids: list[str] = []
    year: int | None = None
    preferred_language: str | None = None
    exp: int
    iat: int
    jti: str | None = None


class JWTError(Exception):
    """Base exception for JWT operations."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid."""

    pass


class JWTManager:
    """JWT token creation and validation manager.

    Attributes:
        _settings: JWT configuration settings.

    Example:
        >>> jwt_manager = JWTManager(settings)
        >>> token = jwt_manager.create_access_token(
        ...     user_id="user-123",
        ...     tenant_code="lycee_hugo",
        ...     user_type="student",
        ...     year=2,
        ... )
        >>> claims = jwt_manager.decode_token(token)
    """

    def __init__(self, settings: JWTSettings) -> None:
        """Initialize the JWT manager.

        Args:
            settings: JWT configuration settings.
        """
        self._settings = settings

    def create_access_token(
        self,
        user_id: str,
        user_type: str,
        tenant_code: str | None = None,
        school_ids: list[str] | None = None,
        year: int | None = None,
        preferred_language: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create an access token.

        Args:
            user_id: User identifier.
            user_type: Role of the user.
            tenant_code: Tenant code for routing.
            school_ids: Schools the user belongs to.
            year: Academic year of a student.
            preferred_language: User's preferred language code.
            expires_delta: Lifetime override. Defaults to the configured
                access token lifetime.

        Returns:
            JWT access token string.
        """
        now = datetime.now(timezone.utc)
        exp = now + (
            expires_delta or timedelta(minutes=self._settings.access_token_expire_minutes)
        )

        payload = {
            "sub": str(user_id),
            "type": "access",
            "tenant_code": tenant_code,
            "user_type": user_type,
            "school_ids": [str(s) for s in (school_ids or [])],
            "year": year,
            "preferred_language": preferred_language,
            "exp": int(exp.timestamp()),
            "iat": int(now.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }

        return jwt.encode(
            payload,
            self._settings.secret_key.get_secret_value(),
            algorithm=self._settings.algorithm,
        )

    def decode_token(
        self,
        token: str,
        expected_type: Literal["access", "refresh"] | None = "access",
    ) -> TokenPayload:
        """Decode and validate a JWT token.

        Args:
            token: JWT token string.
            expected_type: Expected token type.

        Returns:
            TokenPayload with decoded claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid or wrong type.
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except JoseJWTError as e:
            logger.warning("Token decode failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        if expected_type and payload.get("type", "access") != expected_type:
            raise InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

        try:
            return TokenPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning("Token claims rejected: %s", str(e))
            raise InvalidTokenError("Invalid token claims")

    def verify_token(self, token: str) -> bool:
        """Verify if a token is valid.

        Returns:
            True if token is valid, False otherwise.
        """
        try:
            self.decode_token(token)
            return True
        except (TokenExpiredError, InvalidTokenError):
            return False
