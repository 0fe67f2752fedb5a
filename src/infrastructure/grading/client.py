# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""HTTP client for the external AI grading service.

Every failure mode (timeout, connection error, non-2xx status, payload
that does not match GradingResponse) is reported as GraderUnavailableError
so callers have a single recoverable error to handle.

Example:
    client = AIGraderClient()
    try:
        result = await client.validate_quiz(request)
    except GraderUnavailableError:
        result = None
"""

import logging

import httpx
from pydantic import ValidationError

from src.core.config.settings import GraderSettings, get_settings
from src.infrastructure.grading.models import GradingRequest, GradingResponse

logger = logging.getLogger(__name__)


class GraderUnavailableError(Exception):
    """Raised when the grader gives no usable answer.

    Attributes:
        reason: Short description of the failure.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"AI grader unavailable: {reason}")
        self.reason = reason


class AIGraderClient:
    """Async client for POST /validate-quiz.

    Attributes:
        enabled: Whether grading requests should be sent at all.
    """

    def __init__(
        self,
        settings: GraderSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the grader client.

        Args:
            settings: Grader settings. Defaults to application settings.
            transport: Optional transport, used to stub the service in tests.
        """
        self._settings = settings or get_settings().grader
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def max_results(self) -> int:
        return self._settings.max_results

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=httpx.Timeout(self._settings.timeout),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def validate_quiz(self, request: GradingRequest) -> GradingResponse:
        """Send answers to the grader and parse its verdict.

        Args:
            request: Questions and answers to grade.

        Returns:
            Parsed grading response.

        Raises:
            GraderUnavailableError: On timeout, transport failure, error
                status or malformed payload.
        """
        try:
            response = await self._get_client().post(
                "/validate-quiz",
                json=request.model_dump(mode="json"),
            )
        except httpx.TimeoutException as e:
            logger.warning("AI grader timed out after %.1fs", self._settings.timeout)
            raise GraderUnavailableError("timeout") from e
        except httpx.RequestError as e:
            logger.warning("AI grader connection error: %s", e)
            raise GraderUnavailableError(f"connection error: {e}") from e

        if response.status_code >= 300:
            logger.warning(
                "AI grader returned status %d: %s",
                response.status_code,
                response.text[:200],
            )
            raise GraderUnavailableError(f"status {response.status_code}")

        try:
            return GradingResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("AI grader returned malformed payload: %s", e)
            raise GraderUnavailableError("malformed response") from e

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
