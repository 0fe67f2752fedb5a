# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""AI grading service integration."""

from src.infrastructure.grading.client import AIGraderClient, GraderUnavailableError
from src.infrastructure.grading.models import (
    GradingQuestion,
    GradingRequest,
    GradingResponse,
    QuestionVerdict,
    build_module_context,
)

__all__ = [
    "AIGraderClient",
    "GraderUnavailableError",
    "GradingQuestion",
    "GradingRequest",
    "GradingResponse",
    "QuestionVerdict",
    "build_module_context",
]
