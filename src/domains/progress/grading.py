# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quiz attempt lifecycle and grading.

An attempt moves one way, IN_PROGRESS -> COMPLETED. Starting is
idempotent: while an attempt is in progress, start returns it unchanged.
Submitting sends the answers to the AI grader; when the grader fails or
is disabled the attempt still completes, scored 0.

The COMPLETED transition is a conditional update on status, so of two
concurrent submissions exactly one wins and the other gets
AttemptAlreadyCompletedError.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import Settings
from src.domains.progress.errors import (
    AttemptAlreadyCompletedError,
    NoActiveAttemptError,
    SequenceLockedError,
)
from src.domains.progress.repository import ProgressRepository
from src.domains.progress.sequence import (
    AccessDecision,
    Denied,
    evaluate_chapter_quiz,
    evaluate_module_quiz,
)
from src.infrastructure.database.models.tenant import (
    AttemptStatus,
    GradingStatus,
    Module,
    ProgressStatus,
    Quiz,
    QuizGroup,
    StudentQuizAttempt,
)
from src.infrastructure.grading import (
    AIGraderClient,
    GraderUnavailableError,
    GradingQuestion,
    GradingRequest,
    GradingResponse,
    build_module_context,
)
from src.models.progress import SubmitQuizRequest
from src.utils.datetime import utc_now
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StartedAttempt:
    """Attempt returned by start.

    Attributes:
        resumed: True when an attempt already in progress was returned.
    """

    attempt: StudentQuizAttempt
    questions: list[Quiz]
    resumed: bool = False


@dataclass
class QuestionResult:
    quiz_id: str
    question_index: int
    is_correct: bool
    correct_answer: str | None = None
    explanation: str | None = None
    feedback: str | None = None


@dataclass
class GradedSubmission:
    """Outcome of a submission.

    Attributes:
        grader_degraded: True when the score comes from the fallback
            path rather than from the grader.
        progress_changed: True when passing updated a progress flag and
            the module progress needs recalculating.
    """

    attempt: StudentQuizAttempt
    quiz_group: QuizGroup
    results: list[QuestionResult] = field(default_factory=list)
    grader_degraded: bool = False
    overall_feedback: str | None = None
    progress_changed: bool = False


def join_answers(selected: Iterable[str]) -> str:
    """Render selected options the way the grader expects them."""
    return ", ".join(selected)


def compute_tag_performance(tagged_results: Iterable[tuple[list[str], bool]]) -> list[dict[str, Any]]:
    """Accumulate correct/total per tag.

    Args:
        tagged_results: (tags, is_correct) for each question of the attempt.

    Returns:
        One entry per tag in first-seen order, with the percentage rounded
        to two decimals.
    """
    totals: OrderedDict[str, list[int]] = OrderedDict()
    for tags, is_correct in tagged_results:
        for tag in tags:
            counts = totals.setdefault(tag, [0, 0])
            counts[1] += 1
            if is_correct:
                counts[0] += 1

    return [
        {
            "tag": tag,
            "correct": correct,
            "total": total,
            "percentage": round(correct / total * 100, 2) if total else 0.0,
        }
        for tag, (correct, total) in totals.items()
    ]


class AttemptGradingPipeline:
    """Starts, grades and finalizes quiz attempts.

    Attributes:
        repository: Data access bound to the tenant session.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        settings: Settings,
        grader: AIGraderClient | None = None,
    ) -> None:
        self.repository = repository
        self._settings = settings
        self._grader = grader

    @property
    def db(self) -> AsyncSession:
        return self.repository.db

    async def check_access(self, student_id: str, quiz_group: QuizGroup) -> AccessDecision:
        """Decide whether the student may take a quiz group."""
        if quiz_group.is_chapter_quiz and quiz_group.chapter_id:
            chapter_progress = await self.repository.get_chapter_progress(
                student_id, quiz_group.chapter_id
            )
            completed = (
                chapter_progress is not None
                and chapter_progress.status == ProgressStatus.COMPLETED.value
            )
            return evaluate_chapter_quiz(quiz_group.chapter_id, completed)

        chapters = await self.repository.list_chapters(quiz_group.module_id)
        completed_ids = await self.repository.completed_chapter_ids(
            student_id, quiz_group.module_id, require_completed_status=True
        )
        return evaluate_module_quiz((chapter.id for chapter in chapters), completed_ids)

    async def start(self, student_id: str, quiz_group: QuizGroup) -> StartedAttempt:
        """Start an attempt, or return the one already in progress.

        Raises:
            SequenceLockedError: If the quiz is not unlocked yet.
        """
        questions = await self.repository.list_quizzes(quiz_group.id)

        existing = await self.repository.get_in_progress_attempt(student_id, quiz_group.id)
        if existing is not None:
            return StartedAttempt(existing, questions, resumed=True)

        decision = await self.check_access(student_id, quiz_group)
        if isinstance(decision, Denied):
            raise SequenceLockedError(decision.reason, decision.blocking_items)

        attempt_number = await self.repository.last_attempt_number(student_id, quiz_group.id) + 1
        attempt = StudentQuizAttempt(
            student_id=student_id,
            quiz_group_id=quiz_group.id,
            module_id=quiz_group.module_id,
            chapter_id=quiz_group.chapter_id,
            attempt_number=attempt_number,
            status=AttemptStatus.IN_PROGRESS.value,
            total_questions=len(questions),
            passing_threshold=self._settings.progress.default_passing_threshold,
            answers=[],
            tag_performance=[],
            started_at=utc_now(),
        )

        try:
            async with self.db.begin_nested():
                self.db.add(attempt)
                await self.db.flush()
        except IntegrityError:
            # Another request started an attempt first
            existing = await self.repository.get_in_progress_attempt(student_id, quiz_group.id)
            if existing is None:
                raise
            return StartedAttempt(existing, questions, resumed=True)

        logger.info(
            "quiz_attempt_started",
            student_id=student_id,
            quiz_group_id=quiz_group.id,
            attempt_number=attempt_number,
        )
        return StartedAttempt(attempt, questions)

    async def submit(
        self,
        student_id: str,
        quiz_group: QuizGroup,
        request: SubmitQuizRequest,
    ) -> GradedSubmission:
        """Grade and finalize the in-progress attempt of a quiz group.

        Raises:
            NoActiveAttemptError: If no attempt is in progress.
            AttemptAlreadyCompletedError: If a concurrent submission won.
        """
        attempt = await self.repository.get_in_progress_attempt(student_id, quiz_group.id)
        if attempt is None:
            raise NoActiveAttemptError()

        quizzes = await self.repository.list_quizzes(quiz_group.id)
        quizzes_by_id = {quiz.id: quiz for quiz in quizzes}

        answered: list[tuple[Any, Quiz]] = []
        for answer in request.answers:
            quiz = quizzes_by_id.get(answer.quiz_id)
            if quiz is None:
                logger.warning(
                    "unknown_quiz_answer_ignored",
                    quiz_id=answer.quiz_id,
                    quiz_group_id=quiz_group.id,
                )
                continue
            answered.append((answer, quiz))

        questions = [
            GradingQuestion(
                question=quiz.question,
                question_type=quiz.type,
                options=list(quiz.options or []),
                user_answer=join_answers(answer.selected_answers),
            )
            for answer, quiz in answered
        ]

        module = await self.db.get(Module, quiz_group.module_id)
        response, grading_status = await self._grade(module, questions)

        results: list[QuestionResult] = []
        answer_records: list[dict[str, Any]] = []
        correct_by_quiz: dict[str, bool] = {}
        for index, (answer, quiz) in enumerate(answered, start=1):
            verdict = response.verdict_for(index) if response else None
            is_correct = bool(verdict and verdict.is_correct)
            correct_by_quiz[quiz.id] = is_correct
            answer_records.append(
                {
                    "quiz_id": quiz.id,
                    "selected_answers": list(answer.selected_answers),
                    "time_spent_seconds": answer.time_spent_seconds,
                    "is_correct": is_correct,
                }
            )
            results.append(
                QuestionResult(
                    quiz_id=quiz.id,
                    question_index=index,
                    is_correct=is_correct,
                    correct_answer=verdict.correct_answer if verdict else None,
                    explanation=verdict.explanation if verdict else quiz.explanation,
                    feedback=verdict.feedback if verdict else None,
                )
            )

        score = response.score_percentage if response else 0.0
        correct_answers = response.correct_answers if response else 0
        is_passed = score >= attempt.passing_threshold
        tag_performance = compute_tag_performance(
            (list(quiz.tags or []), correct_by_quiz.get(quiz.id, False)) for quiz in quizzes
        )

        await self._finalize(
            attempt,
            status=AttemptStatus.COMPLETED.value,
            score_percentage=score,
            correct_answers=correct_answers,
            time_taken_seconds=request.time_taken_seconds,
            is_passed=is_passed,
            answers=answer_records,
            tag_performance=tag_performance,
            grading_status=grading_status.value,
            grading_report=response.to_report() if response else None,
            completed_at=utc_now(),
        )

        logger.info(
            "quiz_attempt_graded",
            attempt_id=attempt.id,
            score=score,
            passed=is_passed,
            grading_status=grading_status.value,
        )

        progress_changed = False
        if is_passed:
            progress_changed = await self._record_pass(student_id, quiz_group)

        return GradedSubmission(
            attempt=attempt,
            quiz_group=quiz_group,
            results=results,
            grader_degraded=grading_status != GradingStatus.COMPLETED,
            overall_feedback=response.overall_feedback if response else None,
            progress_changed=progress_changed,
        )

    async def _grade(
        self,
        module: Module | None,
        questions: list[GradingQuestion],
    ) -> tuple[GradingResponse | None, GradingStatus]:
        if self._grader is None or not self._grader.enabled:
            return None, GradingStatus.DISABLED
        if not questions:
            return None, GradingStatus.FAILED

        title = module.title if module else ""
        description = (module.description or "") if module else ""
        request = GradingRequest(
            module_title=title,
            module_description=description,
            module_context=build_module_context(title, description, questions),
            questions=questions,
            max_results=self._grader.max_results,
        )

        try:
            return await self._grader.validate_quiz(request), GradingStatus.COMPLETED
        except GraderUnavailableError as e:
            logger.warning("grading_fell_back_to_zero", reason=e.reason)
            return None, GradingStatus.FAILED

    async def _finalize(self, attempt: StudentQuizAttempt, **values: Any) -> None:
        """Move an attempt to COMPLETED if nobody else did first.

        Raises:
            AttemptAlreadyCompletedError: If the attempt is no longer in progress.
        """
        result = await self.db.execute(
            update(StudentQuizAttempt)
            .where(
                StudentQuizAttempt.id == attempt.id,
                StudentQuizAttempt.status == AttemptStatus.IN_PROGRESS.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AttemptAlreadyCompletedError()
        await self.db.refresh(attempt)

    async def _record_pass(self, student_id: str, quiz_group: QuizGroup) -> bool:
        """Mark the quiz completed on the chapter or module progress row."""
        now = utc_now()
        if quiz_group.is_chapter_quiz and quiz_group.chapter_id:
            chapter = await self.repository.get_chapter(quiz_group.chapter_id)
            if chapter is None:
                return False
            chapter_progress = await self.repository.get_or_create_chapter_progress(
                student_id, chapter
            )
            chapter_progress.chapter_quiz_completed = True
            chapter_progress.quiz_completed_at = now
        else:
            module_progress = await self.repository.get_or_create_module_progress(
                student_id, quiz_group.module_id
            )
            module_progress.module_quiz_completed = True

        await self.db.flush()
        return True
