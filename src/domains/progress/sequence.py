# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Sequence gating rules for modules, chapters and quizzes.

Pure decision functions with no I/O. Callers load the sibling items and
the learner's completed set, and get back an Allowed or Denied decision.
A Denied decision is a value, not an exception; the caller decides
whether to raise it.

Two ordering rules exist:

- chained (chapters): an item unlocks once the sibling immediately before
  it is completed.
- prefix (modules): the highest completed sequence determines the next
  available sequence; everything up to and including it is unlocked.

In both rules the lowest-sequence sibling is always unlocked.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Collection, Iterable, Union


class LockReason(str, Enum):
    """Why an item is locked. Values double as message keys."""

    PREVIOUS_CHAPTER_INCOMPLETE = "PREVIOUS_CHAPTER_INCOMPLETE"
    PREVIOUS_MODULE_INCOMPLETE = "PREVIOUS_MODULE_INCOMPLETE"
    MODULE_FUTURE_YEAR = "MODULE_FUTURE_YEAR"
    CHAPTER_NOT_COMPLETED = "CHAPTER_NOT_COMPLETED"
    MODULE_CHAPTERS_INCOMPLETE = "MODULE_CHAPTERS_INCOMPLETE"


@dataclass(frozen=True)
class SequencedItem:
    """An item positioned in an ordered list of siblings."""

    id: str
    sequence: int | None


@dataclass(frozen=True)
class Allowed:
    allowed: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Denied:
    """Access refused.

    Attributes:
        reason: Why the item is locked.
        blocking_items: Ids of the items that must be completed first.
    """

    reason: LockReason
    blocking_items: tuple[str, ...] = ()
    allowed: bool = field(default=False, init=False)


AccessDecision = Union[Allowed, Denied]

ALLOWED = Allowed()


def _ordered(siblings: Iterable[SequencedItem]) -> list[SequencedItem]:
    return sorted(
        (item for item in siblings if item.sequence is not None),
        key=lambda item: item.sequence,  # type: ignore[arg-type, return-value]
    )


def _find(siblings: list[SequencedItem], target_id: str) -> SequencedItem:
    for item in siblings:
        if item.id == target_id:
            return item
    raise ValueError(f"Item {target_id} is not among its siblings")


def evaluate_chained(
    siblings: Iterable[SequencedItem],
    target_id: str,
    completed_ids: Collection[str],
) -> AccessDecision:
    """Unlock an item once its immediate predecessor is completed.

    Args:
        siblings: All non-deleted siblings, including the target.
        target_id: Item being accessed.
        completed_ids: Ids of siblings the learner has completed.

    Raises:
        ValueError: If the target is not among the siblings.
    """
    ordered = _ordered(siblings)
    target = _find(ordered, target_id)

    predecessors = [item for item in ordered if item.sequence < target.sequence]  # type: ignore[operator]
    if not predecessors:
        return ALLOWED

    previous = predecessors[-1]
    if previous.id in completed_ids:
        return ALLOWED
    return Denied(LockReason.PREVIOUS_CHAPTER_INCOMPLETE, (previous.id,))


def next_available_sequence(
    siblings: Iterable[SequencedItem],
    completed_ids: Collection[str],
) -> int | None:
    """Smallest sibling sequence above the highest completed one.

    Returns None when every sibling above the highest completed sequence
    is exhausted, meaning nothing is locked.
    """
    ordered = _ordered(siblings)
    completed = [item.sequence for item in ordered if item.id in completed_ids]
    highest = max(completed) if completed else None  # type: ignore[type-var]

    for item in ordered:
        if highest is None or item.sequence > highest:  # type: ignore[operator]
            return item.sequence
    return None


def evaluate_prefix(
    siblings: Iterable[SequencedItem],
    target_id: str,
    completed_ids: Collection[str],
) -> AccessDecision:
    """Unlock every item up to the next available sequence.

    Raises:
        ValueError: If the target is not among the siblings.
    """
    ordered = _ordered(siblings)
    target = _find(ordered, target_id)

    next_sequence = next_available_sequence(ordered, completed_ids)
    if next_sequence is None or target.sequence <= next_sequence:  # type: ignore[operator]
        return ALLOWED

    blocking = tuple(
        item.id
        for item in ordered
        if item.sequence < target.sequence and item.id not in completed_ids  # type: ignore[operator]
    )
    return Denied(LockReason.PREVIOUS_MODULE_INCOMPLETE, blocking)


def evaluate_module(
    module: SequencedItem,
    module_year: int,
    learner_year: int | None,
    same_year_siblings: Iterable[SequencedItem],
    completed_ids: Collection[str],
) -> AccessDecision:
    """Decide whether a learner may open a module.

    Modules of a later year are locked, modules of an earlier year are
    open, and modules of the learner's own year follow the prefix rule.
    Unsequenced modules follow the year rule only.
    """
    if learner_year is not None:
        if module_year > learner_year:
            return Denied(LockReason.MODULE_FUTURE_YEAR)
        if module_year < learner_year:
            return ALLOWED

    if module.sequence is None:
        return ALLOWED

    return evaluate_prefix(same_year_siblings, module.id, completed_ids)


def evaluate_chapter_quiz(chapter_id: str, chapter_completed: bool) -> AccessDecision:
    """A chapter quiz opens once the chapter itself is marked completed."""
    if chapter_completed:
        return ALLOWED
    return Denied(LockReason.CHAPTER_NOT_COMPLETED, (chapter_id,))


def evaluate_module_quiz(
    chapter_ids: Iterable[str],
    completed_ids: Collection[str],
) -> AccessDecision:
    """A module quiz opens once every chapter is completed with its quiz."""
    blocking = tuple(chapter_id for chapter_id in chapter_ids if chapter_id not in completed_ids)
    if blocking:
        return Denied(LockReason.MODULE_CHAPTERS_INCOMPLETE, blocking)
    return ALLOWED
