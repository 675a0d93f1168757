"""
Unit tests for review status classification and aggregation.

Tests:
- Urgency buckets around the grace/window boundaries
- Monotonic status transitions as time passes
- Tiers, priority scores and labels
- Multi-item aggregation (earliest due date, group override, visual decay)
"""

from datetime import UTC, datetime, timedelta

import pytest

from studyorbit.core.models import GroupContext, MasteryTier, ReviewStatus
from studyorbit.core.timeutil import to_iso
from studyorbit.study.review_status import (
    AggregatedStats,
    ReviewStatusClassifier,
    aggregate,
    label,
    priority_score,
    status,
    tier,
)

ORDER = {
    ReviewStatus.FUTURE: 0,
    ReviewStatus.TODAY: 1,
    ReviewStatus.NOW: 2,
    ReviewStatus.OVERDUE: 3,
}


class TestStatus:
    def test_due_now_is_now(self, now, settings):
        assert status(now, now, settings) == ReviewStatus.NOW

    def test_seven_hours_late_is_overdue(self, now, settings):
        assert status(now - timedelta(hours=7), now, settings) == ReviewStatus.OVERDUE

    def test_grace_boundary_is_now(self, now, settings):
        assert status(now - timedelta(hours=6), now, settings) == ReviewStatus.NOW

    def test_ten_hours_ahead_is_now(self, now, settings):
        assert status(now + timedelta(hours=10), now, settings) == ReviewStatus.NOW

    def test_window_boundary_is_now(self, now, settings):
        assert status(now + timedelta(hours=12), now, settings) == ReviewStatus.NOW

    def test_thirteen_hours_same_day_is_today(self, now, settings):
        assert status(now + timedelta(hours=13), now, settings) == ReviewStatus.TODAY

    def test_thirteen_hours_next_day_is_future(self, settings):
        evening = datetime(2024, 1, 1, 20, 0, tzinfo=UTC)
        assert status(evening + timedelta(hours=13), evening, settings) == ReviewStatus.FUTURE

    def test_iso_strings_are_accepted(self, now, settings):
        assert status("2024-01-01T10:00:00Z", now, settings) == ReviewStatus.NOW

    @pytest.mark.parametrize("bad", ["", "tomorrow", None, 42])
    def test_unparseable_is_overdue(self, bad, now, settings):
        assert status(bad, now, settings) == ReviewStatus.OVERDUE

    def test_custom_window(self, now):
        from studyorbit.config import SchedulerSettings

        narrow = SchedulerSettings(_env_file=None, window_hours=2)
        assert status(now + timedelta(hours=3), now, narrow) == ReviewStatus.TODAY

    def test_transitions_only_move_forward(self, settings):
        due = datetime(2024, 3, 10, 15, 30, tzinfo=UTC)
        start = due - timedelta(days=3)
        seen = [
            status(due, start + timedelta(minutes=30 * step), settings)
            for step in range(0, 6 * 48)
        ]
        ranks = [ORDER[s] for s in seen]

        assert ranks == sorted(ranks)
        assert set(seen) == set(ReviewStatus)


class TestTierAndPriority:
    @pytest.mark.parametrize(
        "mastery, expected",
        [
            (100, MasteryTier.GOLD),
            (85, MasteryTier.GOLD),
            (84.9, MasteryTier.SILVER),
            (70, MasteryTier.SILVER),
            (69.9, MasteryTier.BRONZE),
            (0, MasteryTier.BRONZE),
            (float("nan"), MasteryTier.BRONZE),
            (10**400, MasteryTier.GOLD),
            (-(10**400), MasteryTier.BRONZE),
        ],
    )
    def test_tier_thresholds(self, mastery, expected):
        assert tier(mastery) == expected

    @pytest.mark.parametrize(
        "status_, tier_, expected",
        [
            (ReviewStatus.OVERDUE, MasteryTier.BRONZE, 120),
            (ReviewStatus.OVERDUE, MasteryTier.GOLD, 100),
            (ReviewStatus.NOW, MasteryTier.SILVER, 90),
            (ReviewStatus.TODAY, MasteryTier.GOLD, 50),
            (ReviewStatus.FUTURE, MasteryTier.BRONZE, 30),
            (ReviewStatus.FUTURE, MasteryTier.GOLD, 10),
        ],
    )
    def test_priority_score(self, status_, tier_, expected):
        assert priority_score(status_, tier_) == expected

    def test_weak_future_beats_strong_future(self):
        assert priority_score(ReviewStatus.FUTURE, MasteryTier.BRONZE) > priority_score(
            ReviewStatus.FUTURE, MasteryTier.GOLD
        )


class TestLabel:
    def test_now(self, now, settings):
        assert label(ReviewStatus.NOW, now, now, settings) == "NOW"

    def test_overdue_days(self, now, settings):
        due = now - timedelta(days=3, hours=5)
        assert label(ReviewStatus.OVERDUE, due, now, settings) == "OVERDUE 4d"

    def test_overdue_whole_days(self, now, settings):
        due = now - timedelta(days=3)
        assert label(ReviewStatus.OVERDUE, due, now, settings) == "OVERDUE 3d"

    def test_overdue_less_than_a_day_counts_as_one(self, now, settings):
        due = now - timedelta(hours=7)
        assert label(ReviewStatus.OVERDUE, due, now, settings) == "OVERDUE 1d"

    def test_overdue_without_lateness(self, now, settings):
        assert label(ReviewStatus.OVERDUE, now, now, settings) == "OVERDUE"

    def test_today_shows_clock_time(self, now, settings):
        due = now + timedelta(hours=14, minutes=5)
        assert label(ReviewStatus.TODAY, due, now, settings) == "TODAY 14:05"

    def test_future_days(self, now, settings):
        assert label(ReviewStatus.FUTURE, now + timedelta(days=2), now, settings) == "IN 2d"
        assert label(ReviewStatus.FUTURE, now + timedelta(days=1, hours=1), now, settings) == "IN 2d"

    def test_invalid_dates(self, now, settings):
        assert label(ReviewStatus.OVERDUE, "junk", now, settings) == "OVERDUE"
        assert label(ReviewStatus.FUTURE, "junk", now, settings) == "INVALID DATE"


class TestAggregate:
    def test_empty_without_context_is_never_studied(self, now, settings):
        result = aggregate([], settings, now=now)

        assert result.status == ReviewStatus.FUTURE
        assert result.tier == MasteryTier.BRONZE
        assert result.avg_mastery == 0
        assert result.next_review_at > now + timedelta(days=300)
        assert result.total_items == 0

    def test_none_items_is_empty(self, now, settings):
        assert aggregate(None, settings, now=now).status == ReviewStatus.FUTURE

    def test_empty_with_context_uses_context(self, now, settings):
        context = GroupContext(next_review_date=to_iso(now - timedelta(days=2)), mastery_score=88)
        result = aggregate([], settings, context, now)

        assert result.status == ReviewStatus.OVERDUE
        assert result.tier == MasteryTier.GOLD
        assert result.avg_mastery == 88
        assert result.next_review_at == now - timedelta(days=2)

    def test_empty_with_broken_context_date(self, now, settings):
        result = aggregate([], settings, {"nextReviewDate": "bad", "masteryScore": 10}, now)

        assert result.status == ReviewStatus.OVERDUE
        assert result.next_review_at == now

    def test_earliest_due_date_wins(self, make_item, now, settings):
        items = [
            make_item("a", attempts=1, mastery=90, stability=5, due_in_hours=48, reviewed_hours_ago=0),
            make_item("b", attempts=1, mastery=90, stability=5, due_in_hours=2, reviewed_hours_ago=0),
            make_item("c", attempts=1, mastery=90, stability=5, due_in_hours=-10, reviewed_hours_ago=0),
        ]
        result = aggregate(items, settings, now=now)

        assert result.next_review_at == now - timedelta(hours=10)
        assert result.status == ReviewStatus.OVERDUE
        assert result.breakdown == {
            ReviewStatus.OVERDUE: 1,
            ReviewStatus.NOW: 1,
            ReviewStatus.TODAY: 0,
            ReviewStatus.FUTURE: 1,
        }

    def test_average_ignores_unattempted(self, make_item, now, settings):
        items = [
            make_item("a", attempts=2, mastery=60, stability=5, due_in_hours=48, reviewed_hours_ago=0),
            make_item("b", attempts=0, due_in_hours=48),
        ]
        result = aggregate(items, settings, now=now)

        assert result.avg_mastery == pytest.approx(60)
        assert result.tier == MasteryTier.BRONZE

    def test_average_uses_decayed_domain(self, make_item, now, settings):
        item = make_item("a", attempts=2, mastery=80, stability=1, due_in_hours=48, reviewed_hours_ago=24 * 30)
        result = aggregate([item], settings, now=now)

        assert result.avg_mastery < 80

    def test_group_date_far_in_future_overrides(self, make_item, now, settings):
        items = [make_item("a", attempts=1, mastery=90, stability=5, due_in_hours=-10, reviewed_hours_ago=0)]
        context = GroupContext(next_review_date=to_iso(now + timedelta(days=1)))
        result = aggregate(items, settings, context, now)

        assert result.next_review_at == now + timedelta(days=1)
        assert result.status == ReviewStatus.FUTURE
        assert result.breakdown[ReviewStatus.OVERDUE] == 1

    def test_group_date_within_buffer_does_not_override(self, make_item, now, settings):
        items = [make_item("a", attempts=1, mastery=90, stability=5, due_in_hours=-10, reviewed_hours_ago=0)]
        context = GroupContext(next_review_date=to_iso(now + timedelta(minutes=3)))
        result = aggregate(items, settings, context, now)

        assert result.next_review_at == now - timedelta(hours=10)
        assert result.status == ReviewStatus.OVERDUE

    def test_unparseable_item_dates_count_as_overdue(self, make_item, now, settings):
        items = [
            make_item("a", attempts=1, mastery=90, stability=5, due_in_hours=48, reviewed_hours_ago=0),
            make_item("b", attempts=1, mastery=90, stability=5, reviewed_hours_ago=0, nextReviewDate="garbage"),
        ]
        result = aggregate(items, settings, now=now)

        assert result.breakdown[ReviewStatus.OVERDUE] == 1
        assert result.breakdown[ReviewStatus.FUTURE] == 1
        assert result.next_review_at == now + timedelta(hours=48)

    def test_all_dates_unparseable_is_overdue_now(self, make_item, now, settings):
        items = [make_item("a", attempts=1, mastery=50, nextReviewDate="garbage")]
        result = aggregate(items, settings, now=now)

        assert result.status == ReviewStatus.OVERDUE
        assert result.next_review_at == now

    def test_accepts_raw_dicts(self, now, settings):
        items = [{"id": "a", "totalAttempts": 0, "nextReviewDate": to_iso(now)}, {"bad": 1}]
        result = aggregate(items, settings, now=now)

        assert result.status == ReviewStatus.NOW
        assert result.total_items == 1


class TestVisualDecay:
    def _items(self, make_item, mastery):
        return [
            make_item("a", attempts=3, mastery=mastery, stability=30, due_in_hours=24, reviewed_hours_ago=0)
        ]

    def test_full_at_cycle_completion(self, make_item, now, settings):
        context = GroupContext(
            next_review_date=to_iso(now + timedelta(days=2)),
            last_cycle_completed_at=to_iso(now),
        )
        result = aggregate(self._items(make_item, 60), settings, context, now)

        assert result.avg_mastery == pytest.approx(100)
        assert result.tier == MasteryTier.GOLD

    def test_halfway_interpolates_to_average_floor(self, make_item, now, settings):
        context = GroupContext(
            next_review_date=to_iso(now + timedelta(days=1)),
            last_cycle_completed_at=to_iso(now - timedelta(days=1)),
        )
        result = aggregate(self._items(make_item, 60), settings, context, now)

        assert result.avg_mastery == pytest.approx(80)

    def test_floor_is_at_least_forty(self, make_item, now, settings):
        context = GroupContext(
            next_review_date=to_iso(now + timedelta(days=1)),
            last_cycle_completed_at=to_iso(now - timedelta(days=1)),
        )
        result = aggregate(self._items(make_item, 20), settings, context, now)

        assert result.avg_mastery == pytest.approx(70)

    def test_decay_is_linear_and_non_increasing(self, make_item, settings, now):
        completed = now
        due = now + timedelta(days=10)
        context = GroupContext(
            next_review_date=to_iso(due), last_cycle_completed_at=to_iso(completed)
        )
        items = self._items(make_item, 20)
        values = [
            aggregate(items, settings, context, now + timedelta(days=d)).avg_mastery
            for d in range(0, 10)
        ]

        assert values == sorted(values, reverse=True)
        steps = [a - b for a, b in zip(values, values[1:])]
        assert steps == pytest.approx([steps[0]] * len(steps))

    def test_no_decay_once_due(self, make_item, now, settings):
        context = GroupContext(
            next_review_date=to_iso(now - timedelta(hours=1)),
            last_cycle_completed_at=to_iso(now - timedelta(days=3)),
        )
        result = aggregate(self._items(make_item, 60), settings, context, now)

        assert result.avg_mastery == pytest.approx(60)

    def test_no_decay_without_completion_time(self, make_item, now, settings):
        context = GroupContext(next_review_date=to_iso(now + timedelta(days=1)))
        result = aggregate(self._items(make_item, 60), settings, context, now)

        assert result.avg_mastery == pytest.approx(60)


class TestRankGroups:
    def test_orders_by_priority_then_date(self, now, settings):
        classifier = ReviewStatusClassifier(settings)

        def stats(status_, tier_, hours):
            return AggregatedStats(
                status=status_,
                tier=tier_,
                priority_score=priority_score(status_, tier_),
                label="",
                avg_mastery=0,
                next_review_at=now + timedelta(hours=hours),
            )

        groups = {
            "later": stats(ReviewStatus.FUTURE, MasteryTier.GOLD, 72),
            "urgent": stats(ReviewStatus.OVERDUE, MasteryTier.BRONZE, -30),
            "soon-a": stats(ReviewStatus.NOW, MasteryTier.SILVER, 5),
            "soon-b": stats(ReviewStatus.NOW, MasteryTier.SILVER, 2),
        }
        ranked = [name for name, _ in classifier.rank_groups(groups)]

        assert ranked == ["urgent", "soon-b", "soon-a", "later"]

    def test_to_dict_uses_wire_names(self, now, settings):
        result = aggregate([], settings, now=now).to_dict()

        assert result["status"] == "FUTURE"
        assert result["avgMastery"] == 0
        assert set(result["breakdown"]) == {"OVERDUE", "NOW", "TODAY", "FUTURE"}
