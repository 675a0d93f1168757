"""
Session Engine - question queue for one practice session.

Two phases:
- NEW: unseen items are introduced in input order (FIFO)
- REINFORCE: seen items are re-drilled by reinforcement priority

Wrong answers go to a penalty box for a fixed cool-down (10 minutes) and
pre-empt everything else once unlocked. Waiting is returned as data; the
engine never sleeps, spawns timers or does I/O. The caller polls
get_next_question() again when its countdown reaches zero.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Iterable

from loguru import logger

from studyorbit.config import SchedulerSettings, resolve_settings
from studyorbit.core.models import NextQuestionStatus, ReviewableItem, SessionPhase
from studyorbit.study.retention_engine import RetentionModel


def system_clock_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class NextQuestion:
    """Result of asking the engine what to show next."""

    status: NextQuestionStatus
    question: ReviewableItem | None = None
    next_unlock_in_ms: int | None = None

    @classmethod
    def ready(cls, question: ReviewableItem) -> NextQuestion:
        return cls(status=NextQuestionStatus.READY, question=question)

    @classmethod
    def waiting(cls, next_unlock_in_ms: int) -> NextQuestion:
        return cls(status=NextQuestionStatus.WAITING, next_unlock_in_ms=max(0, next_unlock_in_ms))

    @classmethod
    def empty(cls) -> NextQuestion:
        return cls(status=NextQuestionStatus.EMPTY)


@dataclass
class SessionStats:
    """Running counters for the session."""

    correct: int = 0
    wrong: int = 0
    new_completed: int = 0
    reinforce_count: int = 0

    @property
    def answered(self) -> int:
        return self.correct + self.wrong

    @property
    def accuracy(self) -> float:
        return self.correct / self.answered if self.answered else 0.0


class SessionEngine:
    """
    Owns the queues of exactly one practice session.

    State is private to the instance and only changes through
    submit_result(); discarding the instance ends the session.
    """

    def __init__(
        self,
        items: Iterable[ReviewableItem | dict[str, Any]],
        settings: SchedulerSettings | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Initialize the session.

        Args:
            items: Items available to this session (persisted order kept)
            settings: Scheduler settings (cached defaults if None)
            clock: Epoch-milliseconds clock (wall clock if None)
        """
        self.settings = resolve_settings(settings)
        self._clock = clock or system_clock_ms
        self._retention = RetentionModel(self.settings)

        self._items: dict[str, ReviewableItem] = {}
        self._new_queue: list[str] = []
        self._reinforce_pool: list[str] = []
        self._penalty_box: dict[str, int] = {}
        self._answered: set[str] = set()
        self._stats = SessionStats()

        for raw in items or []:
            item = ReviewableItem.coerce(raw)
            if item is None:
                continue
            if item.id in self._items:
                logger.debug("Duplicate item id {} ignored", item.id)
                continue
            self._items[item.id] = item
            if item.total_attempts == 0:
                self._new_queue.append(item.id)
            else:
                self._reinforce_pool.append(item.id)

        self._phase = SessionPhase.NEW if self._new_queue else SessionPhase.REINFORCE
        logger.debug(
            "Session started: {} new, {} to reinforce, phase {}",
            len(self._new_queue),
            len(self._reinforce_pool),
            self._phase.value,
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def submit_result(self, item_id: str, is_correct: bool) -> None:
        """
        Record an answer for an item shown in this session.

        Wrong answers lock the item for penalty_minutes; a correct answer
        releases it. Unknown ids are ignored.
        """
        if item_id not in self._items:
            logger.debug("Ignoring result for unknown item {}", item_id)
            return

        self._answered.add(item_id)

        if item_id in self._new_queue:
            self._new_queue.remove(item_id)
            self._reinforce_pool.append(item_id)
            self._stats.new_completed += 1
        else:
            self._stats.reinforce_count += 1

        if is_correct:
            self._stats.correct += 1
            if self._penalty_box.pop(item_id, None) is not None:
                logger.debug("Penalty cleared for {}", item_id)
        else:
            self._stats.wrong += 1
            unlock_at = self._clock() + self.settings.penalty_ms
            self._penalty_box[item_id] = unlock_at
            logger.debug("Penalty set for {} until {}", item_id, unlock_at)

        if self._phase == SessionPhase.NEW and not self._new_queue:
            self._enter_reinforce()

    def _enter_reinforce(self) -> None:
        self._phase = SessionPhase.REINFORCE
        logger.debug("Session phase -> REINFORCE")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_next_question(self) -> NextQuestion:
        """
        Decide what to show next.

        Priority:
        1. An unlocked penalty retry (pre-empts both phases)
        2. NEW phase: head of the new queue
        3. REINFORCE phase: best unanswered candidate outside the penalty
           box, else WAITING for the soonest unlock, else EMPTY
        """
        now_ms = self._clock()

        retry = self._unlocked_retry(now_ms)
        if retry is not None:
            return NextQuestion.ready(retry)

        if self._phase == SessionPhase.NEW:
            while self._new_queue:
                item = self._items.get(self._new_queue[0])
                if item is not None:
                    return NextQuestion.ready(item)
                self._new_queue.pop(0)
            self._enter_reinforce()

        now = datetime.fromtimestamp(now_ms / 1000, UTC)
        candidates = [
            self._items[item_id]
            for item_id in self._reinforce_pool
            if item_id not in self._penalty_box and item_id in self._items
        ]
        ranked = sorted(
            candidates,
            key=lambda item: self._retention.reinforcement_priority(item, now),
            reverse=True,
        )

        for item in ranked:
            if item.id not in self._answered:
                return NextQuestion.ready(item)

        if self._penalty_box:
            soonest = min(self._penalty_box.values())
            return NextQuestion.waiting(soonest - now_ms)

        return NextQuestion.empty()

    def _unlocked_retry(self, now_ms: int) -> ReviewableItem | None:
        due = [
            (unlock_at, item_id)
            for item_id, unlock_at in self._penalty_box.items()
            if unlock_at <= now_ms and item_id in self._items
        ]
        if not due:
            return None
        _, item_id = min(due, key=lambda pair: pair[0])
        return self._items[item_id]

    def get_phase(self) -> SessionPhase:
        return self._phase

    def get_pending_retry_count(self) -> int:
        return len(self._penalty_box)

    def get_remaining_new_count(self) -> int:
        return len(self._new_queue)

    def get_stats(self) -> SessionStats:
        """Copy of the running counters."""
        return SessionStats(**vars(self._stats))

    def get_unlock_time(self, item_id: str) -> int | None:
        """Epoch-ms unlock time of a penalized item, or None."""
        return self._penalty_box.get(item_id)

    @property
    def answered_ids(self) -> frozenset[str]:
        """Ids answered at least once (for partial completion)."""
        return frozenset(self._answered)

    @property
    def new_queue(self) -> list[str]:
        return list(self._new_queue)

    def get_item(self, item_id: str) -> ReviewableItem | None:
        return self._items.get(item_id)
