"""
Review Status - due-date urgency and mastery tiers.

Classifies a single due date into an urgency bucket, maps mastery to a
tier, and folds many items of one lesson/card into a single composite
status for display and for sorting groups.

Urgency buckets (diff = due - now, in hours):
- OVERDUE: diff < -grace
- NOW:     -grace <= diff <= window
- TODAY:   later the same calendar day
- FUTURE:  anything else
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from loguru import logger

from studyorbit.config import SchedulerSettings, resolve_settings
from studyorbit.core.models import (
    GroupContext,
    MasteryTier,
    ReviewableItem,
    ReviewStatus,
    finite_float,
)
from studyorbit.core.timeutil import days_between, ensure_aware, hours_between, parse_timestamp
from studyorbit.study.retention_engine import RetentionModel

GOLD_THRESHOLD = 85.0
SILVER_THRESHOLD = 70.0

STATUS_BASE_SCORE = {
    ReviewStatus.OVERDUE: 100,
    ReviewStatus.NOW: 80,
    ReviewStatus.TODAY: 50,
    ReviewStatus.FUTURE: 10,
}

TIER_BONUS = {
    MasteryTier.BRONZE: 20,
    MasteryTier.SILVER: 10,
    MasteryTier.GOLD: 0,
}

NEVER_STUDIED_HORIZON = timedelta(days=365)


def empty_breakdown() -> dict[ReviewStatus, int]:
    return {status: 0 for status in ReviewStatus}


@dataclass
class AggregatedStats:
    """Composite review status of a group of items."""

    status: ReviewStatus
    tier: MasteryTier
    priority_score: int
    label: str
    avg_mastery: float
    next_review_at: datetime
    breakdown: dict[ReviewStatus, int] = field(default_factory=empty_breakdown)

    @property
    def total_items(self) -> int:
        return sum(self.breakdown.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "tier": self.tier.value,
            "priorityScore": self.priority_score,
            "label": self.label,
            "breakdown": {k.value: v for k, v in self.breakdown.items()},
            "avgMastery": self.avg_mastery,
            "nextReviewAt": self.next_review_at.isoformat(),
        }


class ReviewStatusClassifier:
    """
    Pure classification of due dates plus multi-item aggregation.

    The grace and window widths come from settings (6h / 12h by default).
    """

    def __init__(self, settings: SchedulerSettings | None = None):
        self.settings = resolve_settings(settings)
        self.retention = RetentionModel(self.settings)

    # -------------------------------------------------------------------------
    # Single due date
    # -------------------------------------------------------------------------

    def status(self, next_review_date: object, now: datetime | None = None) -> ReviewStatus:
        """Urgency bucket of a due date. Unparseable dates are OVERDUE."""
        due = parse_timestamp(next_review_date)
        if due is None:
            return ReviewStatus.OVERDUE

        now = ensure_aware(now)
        diff_hours = hours_between(now, due)

        if diff_hours < -self.settings.grace_hours:
            return ReviewStatus.OVERDUE
        if diff_hours <= self.settings.window_hours:
            return ReviewStatus.NOW
        if due.astimezone(now.tzinfo).date() == now.date():
            return ReviewStatus.TODAY
        return ReviewStatus.FUTURE

    @staticmethod
    def tier(mastery: float) -> MasteryTier:
        if not isinstance(mastery, (int, float)):
            return MasteryTier.BRONZE
        mastery = finite_float(mastery, math.nan)
        if math.isnan(mastery):
            return MasteryTier.BRONZE
        if mastery >= GOLD_THRESHOLD:
            return MasteryTier.GOLD
        if mastery >= SILVER_THRESHOLD:
            return MasteryTier.SILVER
        return MasteryTier.BRONZE

    @staticmethod
    def priority_score(status: ReviewStatus, tier: MasteryTier) -> int:
        """Urgency base score plus a bonus for weaker tiers."""
        return STATUS_BASE_SCORE[ReviewStatus(status)] + TIER_BONUS[MasteryTier(tier)]

    def label(
        self,
        status: ReviewStatus,
        next_review_date: object,
        now: datetime | None = None,
    ) -> str:
        """
        Human-readable countdown.

        NOW, OVERDUE / OVERDUE 3d, TODAY 14:05, IN 2d.
        """
        status = ReviewStatus(status)
        if status == ReviewStatus.NOW:
            return "NOW"

        due = parse_timestamp(next_review_date)
        if due is None:
            return "OVERDUE" if status == ReviewStatus.OVERDUE else "INVALID DATE"

        now = ensure_aware(now)
        diff_days = days_between(now, due)

        if status == ReviewStatus.OVERDUE:
            # Any started day of lateness counts.
            late_days = max(0, math.ceil(-diff_days))
            return f"OVERDUE {late_days}d" if late_days > 0 else "OVERDUE"

        if status == ReviewStatus.TODAY:
            return f"TODAY {due.astimezone(now.tzinfo):%H:%M}"

        return f"IN {max(1, math.ceil(diff_days))}d"

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def aggregate(
        self,
        items: Iterable[ReviewableItem | dict[str, Any]] | None,
        group_context: GroupContext | Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AggregatedStats:
        """
        Fold the items of one lesson/card into a composite status.

        - avg_mastery: mean current domain over attempted items only
        - due date: earliest parseable item date, unless the group's own
          date lies beyond now + buffer (a cycle was just completed)
        - visual decay: between cycles the displayed mastery slides
          linearly from 100 at completion to max(floor, avg) at the due date
        """
        now = ensure_aware(now)
        context = self._as_context(group_context)
        coerced = [ReviewableItem.coerce(item) for item in (items or [])]
        members = [item for item in coerced if item is not None]

        if not members:
            if context is not None:
                return self._classify_context(context, now)
            return AggregatedStats(
                status=ReviewStatus.FUTURE,
                tier=MasteryTier.BRONZE,
                priority_score=0,
                label="—",
                avg_mastery=0.0,
                next_review_at=now + NEVER_STUDIED_HORIZON,
            )

        breakdown = empty_breakdown()
        mastery_sum = 0.0
        attempted = 0
        earliest: datetime | None = None
        earliest_raw: object = members[0].next_review_date

        for item in members:
            if item.total_attempts > 0:
                mastery_sum += self.retention.current_domain(item, now)
                attempted += 1

            due = item.next_review_at
            if due is None:
                breakdown[ReviewStatus.OVERDUE] += 1
                continue

            breakdown[self.status(due, now)] += 1
            if earliest is None or due < earliest:
                earliest = due
                earliest_raw = item.next_review_date

        effective_due = earliest
        effective_raw = earliest_raw

        if context is not None:
            group_due = parse_timestamp(context.next_review_date)
            buffer = timedelta(minutes=self.settings.group_override_buffer_minutes)
            if group_due is not None and group_due > now + buffer:
                effective_due = group_due
                effective_raw = context.next_review_date

        avg_mastery = mastery_sum / attempted if attempted else 0.0
        display_mastery = self._visual_decay(avg_mastery, context, now)

        if effective_due is None:
            logger.debug("No parseable due date in group; treating it as due now")
            effective_due = now

        status = self.status(effective_raw, now)
        tier = self.tier(display_mastery)

        return AggregatedStats(
            status=status,
            tier=tier,
            priority_score=self.priority_score(status, tier),
            label=self.label(status, effective_raw, now),
            avg_mastery=display_mastery,
            next_review_at=effective_due,
            breakdown=breakdown,
        )

    def rank_groups(
        self, groups: Mapping[str, AggregatedStats]
    ) -> list[tuple[str, AggregatedStats]]:
        """Order groups by priority (highest first), then by due date."""
        return sorted(
            groups.items(),
            key=lambda pair: (-pair[1].priority_score, pair[1].next_review_at),
        )

    def _classify_context(self, context: GroupContext, now: datetime) -> AggregatedStats:
        status = self.status(context.next_review_date, now)
        tier = self.tier(context.mastery_score)
        due = parse_timestamp(context.next_review_date) or now
        return AggregatedStats(
            status=status,
            tier=tier,
            priority_score=self.priority_score(status, tier),
            label=self.label(status, context.next_review_date, now),
            avg_mastery=context.mastery_score,
            next_review_at=due,
        )

    def _visual_decay(
        self, avg_mastery: float, context: GroupContext | None, now: datetime
    ) -> float:
        if context is None or not context.last_cycle_completed_at:
            return avg_mastery

        due = parse_timestamp(context.next_review_date)
        completed = parse_timestamp(context.last_cycle_completed_at)
        if due is None or completed is None or due <= now:
            return avg_mastery

        total_ms = (due - completed).total_seconds() * 1000
        elapsed_ms = (now - completed).total_seconds() * 1000
        progress = max(0.0, min(1.0, elapsed_ms / max(1.0, total_ms)))
        floor = max(self.settings.visual_decay_floor, avg_mastery)
        return 100 - progress * (100 - floor)

    @staticmethod
    def _as_context(value: GroupContext | Mapping[str, Any] | None) -> GroupContext | None:
        if value is None or isinstance(value, GroupContext):
            return value
        if isinstance(value, Mapping):
            return GroupContext.model_validate(dict(value))
        return None


# =============================================================================
# Functional interface
# =============================================================================


def status(
    next_review_date: object,
    now: datetime | None = None,
    settings: SchedulerSettings | None = None,
) -> ReviewStatus:
    return ReviewStatusClassifier(settings).status(next_review_date, now)


def tier(mastery: float) -> MasteryTier:
    return ReviewStatusClassifier.tier(mastery)


def priority_score(status: ReviewStatus, tier: MasteryTier) -> int:
    return ReviewStatusClassifier.priority_score(status, tier)


def label(
    status: ReviewStatus,
    next_review_date: object,
    now: datetime | None = None,
    settings: SchedulerSettings | None = None,
) -> str:
    return ReviewStatusClassifier(settings).label(status, next_review_date, now)


def aggregate(
    items: Iterable[ReviewableItem | dict[str, Any]] | None,
    settings: SchedulerSettings | None = None,
    group_context: GroupContext | Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> AggregatedStats:
    """Composite status of one group of items (see ReviewStatusClassifier.aggregate)."""
    return ReviewStatusClassifier(settings).aggregate(items, group_context, now)
