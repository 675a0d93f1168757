"""
Retention Engine - per-item memory model.

Computes, for a single reviewable item:
1. Retrievability - exponential forgetting curve driven by stability
2. Domain - the live, decayed retention estimate (mastery x saturating recall)
3. Next scheduling state after an answer (mastery, stability, next review)
4. Reinforcement priority - ordering key for the in-session reinforce pool

Mastery only changes when the learner answers. Domain is never stored; it is
recomputed on read so an item "gets fuzzy but never disappears".

Every entry point accepts either a ReviewableItem or a raw dict and never
raises: malformed values are clamped or defaulted, always toward more review.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from loguru import logger

from studyorbit.config import SchedulerSettings, resolve_settings
from studyorbit.core.models import (
    AnalyticsPayload,
    AnswerOutcome,
    Attempt,
    ReviewableItem,
    SelfEvalLevel,
    TimingClass,
    Urgency,
    finite_float,
)
from studyorbit.core.timeutil import (
    days_between,
    ensure_aware,
    hours_between,
    parse_timestamp,
    to_iso,
)

# =============================================================================
# Priority weights (reinforce pool ordering)
# =============================================================================

DUE_BONUS = 1000.0  # Anything due outranks anything not due
MAX_LATENESS_BONUS = 100.0  # One point per overdue day, capped
DOMAIN_WEIGHT = 2.0
MASTERY_WEIGHT = 1.0
WRONG_ANSWER_BONUS = 500.0
WRONG_RECENCY_BONUS = 100.0  # Decays with hours since the wrong answer
WRONG_RECENCY_HALF_DAY = 12.0
CHRONIC_ERROR_BONUS = 50.0

# Mastery gain multiplier per self-evaluation (correct answers only)
CONFIDENCE_FACTORS = {
    SelfEvalLevel.HARD: 0.6,
    SelfEvalLevel.GOOD: 1.0,
    SelfEvalLevel.EASY: 1.3,
}

CRITICAL_RETRIEVABILITY = 0.70
ALERT_RETRIEVABILITY = 0.85


def _as_item(item: ReviewableItem | dict[str, Any] | None) -> ReviewableItem:
    coerced = ReviewableItem.coerce(item)
    if coerced is None:
        # Unusable input is scheduled like a brand-new item.
        return ReviewableItem(id="")
    return coerced


@dataclass
class CollectionStats:
    """Summary of a collection of items."""

    total: int = 0
    attempted: int = 0
    avg_mastery: float = 0.0
    avg_domain: float = 0.0
    error_count: int = 0
    critical_count: int = 0

    @property
    def unseen(self) -> int:
        return self.total - self.attempted


class RetentionModel:
    """
    Per-item retention and scheduling model.

    Stability (days) controls both how slowly domain decays and how far out
    the next review lands. Correct answers grow stability multiplicatively,
    wrong answers contract it toward the configured floor.
    """

    def __init__(self, settings: SchedulerSettings | None = None):
        """
        Initialize the model.

        Args:
            settings: Scheduler settings (cached defaults if None)
        """
        self.settings = resolve_settings(settings)

    # -------------------------------------------------------------------------
    # Decay
    # -------------------------------------------------------------------------

    def effective_stability(self, item: ReviewableItem) -> float:
        """Item stability with default and floor applied."""
        s = item.stability if item.stability is not None else self.settings.default_stability_days
        return max(self.settings.stability_floor_days, s)

    def retrievability(self, item: ReviewableItem, now: datetime | None = None) -> float:
        """
        Probability of recall right now (0-1).

        R = exp(-elapsed_days / stability). Items never reviewed have R = 0.
        """
        last = item.last_reviewed
        if last is None:
            return 0.0
        elapsed = max(0.0, days_between(last, ensure_aware(now)))
        return math.exp(-elapsed / self.effective_stability(item))

    def current_domain(self, item: ReviewableItem, now: datetime | None = None) -> float:
        """
        Current decayed retention estimate (0-100).

        domain = mastery * (floor + (1 - floor) * R)

        Non-increasing in elapsed time and saturating at mastery * floor.
        Unattempted items are 0.
        """
        if item.total_attempts == 0:
            return 0.0
        floor = min(1.0, max(0.0, self.settings.retention_floor))
        r = self.retrievability(item, now)
        domain = item.mastery_score * (floor + (1.0 - floor) * r)
        return max(0.0, min(100.0, domain))

    def urgency(self, item: ReviewableItem, now: datetime | None = None) -> Urgency:
        """Retrievability band of an item."""
        r = self.retrievability(item, now)
        if r < CRITICAL_RETRIEVABILITY:
            return Urgency.CRITICAL
        if r < ALERT_RETRIEVABILITY:
            return Urgency.ALERT
        return Urgency.STABLE

    # -------------------------------------------------------------------------
    # Timing
    # -------------------------------------------------------------------------

    def target_seconds(self, item: ReviewableItem) -> float:
        """Expected reading + answering time derived from content length."""
        chars = len(item.presentation_text())
        rate = max(1.0, self.settings.reading_chars_per_sec)
        target = self.settings.base_think_sec + chars / rate
        return round(
            max(self.settings.min_target_sec, min(self.settings.max_target_sec, target)), 1
        )

    def classify_timing(
        self, time_sec: float, item: ReviewableItem
    ) -> tuple[TimingClass, float]:
        """
        Compare the response time with the item's target time.

        Returns:
            (timing_class, target_sec)
        """
        target = self.target_seconds(item)
        elapsed = max(0.0, finite_float(time_sec, 0.0))

        if elapsed < target * self.settings.rt_fast:
            return TimingClass.TOO_FAST, target
        if elapsed > target * self.settings.rt_slow:
            return TimingClass.SLOW, target
        return TimingClass.NORMAL, target

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def interval_days(self, stability: float) -> float:
        """Review interval for a stability value (non-decreasing in stability)."""
        s = max(self.settings.stability_floor_days, finite_float(stability, 0.0))
        return min(s, self.settings.stability_cap_days)

    def apply_answer(
        self,
        item: ReviewableItem,
        is_correct: bool,
        self_eval_level: int | SelfEvalLevel = SelfEvalLevel.GOOD,
        time_taken_sec: float = 0.0,
        now: datetime | None = None,
    ) -> AnswerOutcome:
        """
        Produce the next scheduling state after a single answer.

        Correct:
            stability *= 1 + alpha(level) * (1 + 2(1 - R)) * (2 - difficulty) * fluency
            mastery += gain(level), damped when the answer was too fast
            next review = now + interval(stability)
        Wrong:
            stability *= gamma_fail (never below the floor)
            mastery -= max(min_fail_penalty, mastery * mastery_fail_penalty)
            next review = now + fail_review_delay_minutes
        """
        cfg = self.settings
        now = ensure_aware(now)
        level = SelfEvalLevel.coerce(self_eval_level)
        timing_class, target_sec = self.classify_timing(time_taken_sec, item)

        current_s = self.effective_stability(item)
        current_d = item.difficulty if item.difficulty is not None else 0.5
        current_r = self.retrievability(item, now)
        mastery = item.mastery_score

        if is_correct:
            if level == SelfEvalLevel.AGAIN:
                # A correct answer rated "again" counts as a hard success.
                level = SelfEvalLevel.HARD

            if level == SelfEvalLevel.EASY:
                new_d = max(0.1, current_d - 0.15)
            elif level == SelfEvalLevel.HARD:
                new_d = min(1.0, current_d + 0.1)
            else:
                new_d = current_d

            alpha = cfg.get_self_eval_alphas()[int(level)]
            gain = alpha * (1 + (1 - current_r) * 2) * (1 + (1 - current_d))

            fluency = 1.0
            elapsed = max(0.0, finite_float(time_taken_sec, 0.0))
            if timing_class == TimingClass.NORMAL and elapsed <= target_sec:
                fluency += cfg.k_rt_bonus

            new_s = current_s * (1 + gain * fluency)

            increment = cfg.mastery_gain * CONFIDENCE_FACTORS[level] * (1 - mastery / 200)
            if timing_class == TimingClass.TOO_FAST:
                increment *= cfg.fast_mastery_damping
            new_mastery = mastery + max(0.0, increment)
        else:
            new_d = min(1.0, current_d + 0.2)
            new_s = current_s * cfg.gamma_fail

            loss = max(cfg.min_fail_penalty, mastery * cfg.mastery_fail_penalty)
            new_mastery = mastery - loss

        new_s = max(cfg.stability_floor_days, min(new_s, cfg.stability_cap_days))
        new_mastery = max(0.0, min(100.0, new_mastery))

        if is_correct:
            next_review = now + timedelta(days=self.interval_days(new_s))
        else:
            next_review = now + timedelta(minutes=max(0.0, cfg.fail_review_delay_minutes))

        logger.debug(
            "Answer on {} ({}): S {:.2f}->{:.2f}, mastery {:.1f}->{:.1f}, {}",
            item.id or "<anon>",
            "correct" if is_correct else "wrong",
            current_s,
            new_s,
            mastery,
            new_mastery,
            timing_class.value,
        )

        return AnswerOutcome(
            mastery_score=new_mastery,
            stability=new_s,
            difficulty=new_d,
            next_review_date=to_iso(next_review),
            last_reviewed_at=to_iso(now),
            timing_class=timing_class,
            target_sec=target_sec,
            grade=(level if is_correct else SelfEvalLevel.AGAIN).grade,
            last_was_correct=bool(is_correct),
        )

    def record_answer(
        self,
        item: ReviewableItem,
        is_correct: bool,
        self_eval_level: int | SelfEvalLevel = SelfEvalLevel.GOOD,
        time_taken_sec: float = 0.0,
        now: datetime | None = None,
        analytics: AnalyticsPayload | None = None,
    ) -> ReviewableItem:
        """
        Apply an answer and return the updated item.

        Increments total_attempts and appends exactly one Attempt, so the
        history length tracks the attempt count. The input is not mutated.
        """
        outcome = self.apply_answer(item, is_correct, self_eval_level, time_taken_sec, now)

        attempt = Attempt(
            date=outcome.last_reviewed_at,
            was_correct=bool(is_correct),
            mastery_after=outcome.mastery_score,
            stability_after=outcome.stability,
            difficulty_after=outcome.difficulty,
            time_sec=round(max(0.0, finite_float(time_taken_sec, 0.0))),
            self_eval_level=int(SelfEvalLevel.coerce(self_eval_level)),
            grade=outcome.grade,
            timing_class=outcome.timing_class,
            target_sec=outcome.target_sec,
            analytics=analytics,
        )

        return item.model_copy(
            update={
                "mastery_score": outcome.mastery_score,
                "stability": outcome.stability,
                "difficulty": outcome.difficulty,
                "next_review_date": outcome.next_review_date,
                "last_reviewed_at": outcome.last_reviewed_at,
                "last_was_correct": outcome.last_was_correct,
                "total_attempts": item.total_attempts + 1,
                "lapses": item.lapses + (0 if is_correct else 1),
                "correct_streak": item.correct_streak + 1 if is_correct else 0,
                "recent_error": 0 if is_correct else 1,
                "attempt_history": [*item.attempt_history, attempt],
            }
        )

    # -------------------------------------------------------------------------
    # Prioritization
    # -------------------------------------------------------------------------

    def reinforcement_priority(self, item: ReviewableItem, now: datetime | None = None) -> float:
        """
        Ordering key for the reinforce pool (higher = shown sooner).

        Combines: due/overdue status (dominant), low domain, low mastery and
        a recent wrong answer. Unparseable due dates count as due.
        """
        now = ensure_aware(now)
        score = 0.0

        due = item.next_review_at
        if due is None or due <= now:
            score += DUE_BONUS
            if due is not None:
                score += min(MAX_LATENESS_BONUS, days_between(due, now))

        score += (100 - self.current_domain(item, now)) * DOMAIN_WEIGHT
        score += (100 - item.mastery_score) * MASTERY_WEIGHT

        if item.total_attempts > 0 and not item.last_was_correct:
            score += WRONG_ANSWER_BONUS
            last = item.last_reviewed
            if last is not None:
                hours_ago = max(0.0, hours_between(last, now))
                score += WRONG_RECENCY_BONUS * math.pow(0.5, hours_ago / WRONG_RECENCY_HALF_DAY)

        if item.total_attempts > 5 and item.recent_error:
            score += CHRONIC_ERROR_BONUS

        return score

    def is_gold_window(self, next_review_date: object, now: datetime | None = None) -> bool:
        """True while now is within gold_window_hours of the due time."""
        due = parse_timestamp(next_review_date)
        if due is None:
            return False
        return abs(hours_between(due, ensure_aware(now))) <= self.settings.gold_window_hours

    def collection_stats(
        self, items: Iterable[ReviewableItem], now: datetime | None = None
    ) -> CollectionStats:
        """Totals, averages over attempted items and error counts."""
        stats = CollectionStats()
        mastery_sum = 0.0
        domain_sum = 0.0

        for item in items:
            stats.total += 1
            if item.total_attempts > 0:
                stats.attempted += 1
                mastery_sum += item.mastery_score
                domain_sum += self.current_domain(item, now)
                if not item.last_was_correct:
                    stats.error_count += 1
            if item.payload.get("isCritical") or item.payload.get("is_critical"):
                stats.critical_count += 1

        if stats.attempted:
            stats.avg_mastery = mastery_sum / stats.attempted
            stats.avg_domain = domain_sum / stats.attempted
        return stats


# =============================================================================
# Functional interface
# =============================================================================


def retrievability(
    item: ReviewableItem | dict[str, Any],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> float:
    return RetentionModel(settings).retrievability(_as_item(item), now)


def current_domain(
    item: ReviewableItem | dict[str, Any],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> float:
    """Current decayed retention (0-100); 0 for unattempted items."""
    return RetentionModel(settings).current_domain(_as_item(item), now)


def apply_answer(
    item: ReviewableItem | dict[str, Any],
    is_correct: bool,
    self_eval_level: int | SelfEvalLevel = SelfEvalLevel.GOOD,
    time_taken_sec: float = 0.0,
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> AnswerOutcome:
    """Next scheduling state after one answer (pure, never raises)."""
    return RetentionModel(settings).apply_answer(
        _as_item(item), bool(is_correct), self_eval_level, time_taken_sec, now
    )


def record_answer(
    item: ReviewableItem | dict[str, Any],
    is_correct: bool,
    self_eval_level: int | SelfEvalLevel = SelfEvalLevel.GOOD,
    time_taken_sec: float = 0.0,
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
    analytics: AnalyticsPayload | None = None,
) -> ReviewableItem:
    return RetentionModel(settings).record_answer(
        _as_item(item), bool(is_correct), self_eval_level, time_taken_sec, now, analytics
    )


def classify_timing(
    time_sec: float,
    item: ReviewableItem | dict[str, Any],
    settings: SchedulerSettings | None = None,
) -> tuple[TimingClass, float]:
    return RetentionModel(settings).classify_timing(time_sec, _as_item(item))


def reinforcement_priority(
    item: ReviewableItem | dict[str, Any],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> float:
    return RetentionModel(settings).reinforcement_priority(_as_item(item), now)


def urgency(
    item: ReviewableItem | dict[str, Any],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> Urgency:
    return RetentionModel(settings).urgency(_as_item(item), now)


def is_gold_window(
    next_review_date: object,
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> bool:
    return RetentionModel(settings).is_gold_window(next_review_date, now)


def collection_stats(
    items: Iterable[ReviewableItem | dict[str, Any]],
    settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> CollectionStats:
    model = RetentionModel(settings)
    coerced = (ReviewableItem.coerce(item) for item in items)
    return model.collection_stats((item for item in coerced if item is not None), now)
