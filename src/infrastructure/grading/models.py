# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Wire models for the AI grading service.

The grader receives the learner's answers as plain text together with a
readable digest of the module, and answers with an overall score and a
verdict per question.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GradingQuestion(BaseModel):
    """One answered question sent to the grader."""

    question: str
    question_type: str
    options: list[str] = Field(default_factory=list)
    user_answer: str


class GradingRequest(BaseModel):
    """Body of POST /validate-quiz."""

    module_title: str
    module_description: str = ""
    module_context: str
    questions: list[GradingQuestion]
    max_results: int = 5


class QuestionVerdict(BaseModel):
    """Grader verdict for one question.

    Attributes:
        question_index: 1-based position of the question in the request.
    """

    model_config = ConfigDict(extra="ignore")

    question_index: int
    is_correct: bool = False
    question: str | None = None
    user_answer: str | None = None
    correct_answer: str | None = None
    explanation: str | None = None
    feedback: str | None = None
    score: float | None = None


class GradingResponse(BaseModel):
    """Grader answer for a whole submission."""

    model_config = ConfigDict(extra="ignore")

    score_percentage: float = Field(ge=0, le=100)
    correct_answers: int = Field(ge=0)
    total_questions: int | None = None
    overall_feedback: str | None = None
    knowledge_available: bool | None = None
    questions_results: list[QuestionVerdict] = Field(default_factory=list)

    def verdict_for(self, question_index: int) -> QuestionVerdict | None:
        """Find the verdict for a 1-based question index."""
        for verdict in self.questions_results:
            if verdict.question_index == question_index:
                return verdict
        return None

    def to_report(self) -> dict[str, Any]:
        """Serialize for storage on the attempt row."""
        return self.model_dump(mode="json")


def build_module_context(
    module_title: str,
    module_description: str | None,
    questions: list[GradingQuestion],
) -> str:
    """Build the readable module digest sent along with the answers."""
    lines = [
        f"Module: {module_title}",
        f"Description: {module_description or ''}",
        "",
        "Questions to verify:",
    ]
    for index, question in enumerate(questions, start=1):
        lines.append(f"{index}. {question.question}")
        lines.append(f"   Type: {question.question_type}")
        if question.options:
            lines.append(f"   Options: {', '.join(question.options)}")
    return "\n".join(lines)
