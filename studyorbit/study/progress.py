"""
Applying a session's answers to the items that were studied.

The session engine only decides what to show; persisting the outcome is the
caller's job. This module turns the answers collected during a session
(complete or abandoned early) into updated items ready to be saved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from loguru import logger
from pydantic import ValidationError

from studyorbit.config import SchedulerSettings
from studyorbit.core.models import AnswerRecord, ReviewableItem
from studyorbit.core.timeutil import ensure_aware
from studyorbit.study.retention_engine import RetentionModel


@dataclass
class SessionResult:
    """Items updated by a session plus answers that could not be matched."""

    updated: list[ReviewableItem] = field(default_factory=list)
    skipped_answers: list[str] = field(default_factory=list)

    def merge_into(self, items: Iterable[ReviewableItem]) -> list[ReviewableItem]:
        """
        Replace items by their updated versions, keeping order.

        Only the first record with a given id is replaced; later records
        sharing that id are returned untouched.
        """
        by_id = {item.id: item for item in self.updated}
        merged: list[ReviewableItem] = []
        for item in items:
            merged.append(by_id.pop(item.id, item))
        return merged


def process_session_result(
    items: Iterable[ReviewableItem | dict[str, Any]],
    answers: Iterable[AnswerRecord | dict[str, Any]],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> SessionResult:
    """
    Apply every answer, in order, to its item.

    Each answer appends one attempt, so an item retried after a penalty gets
    one history record per answer. Items without answers are left out of
    the result; answers for unknown ids are reported as skipped.
    """
    model = RetentionModel(settings)
    now = ensure_aware(now)

    current: dict[str, ReviewableItem] = {}
    order: list[str] = []
    for raw in items:
        item = ReviewableItem.coerce(raw)
        if item is None or item.id in current:
            continue
        current[item.id] = item
        order.append(item.id)

    touched: set[str] = set()
    result = SessionResult()

    for raw_answer in answers:
        try:
            answer = (
                raw_answer
                if isinstance(raw_answer, AnswerRecord)
                else AnswerRecord.model_validate(raw_answer)
            )
        except ValidationError:
            logger.debug("Skipping malformed answer: {!r}", raw_answer)
            continue

        item = current.get(answer.item_id)
        if item is None:
            logger.debug("Skipping answer for unknown item {}", answer.item_id)
            result.skipped_answers.append(answer.item_id)
            continue

        current[answer.item_id] = model.record_answer(
            item,
            answer.was_correct,
            answer.self_eval_level,
            answer.time_sec,
            now,
            answer.analytics,
        )
        touched.add(answer.item_id)

    result.updated = [current[item_id] for item_id in order if item_id in touched]
    logger.debug(
        "Session applied: {} items updated, {} answers skipped",
        len(result.updated),
        len(result.skipped_answers),
    )
    return result
