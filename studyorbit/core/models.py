"""
Core data model for the scheduling engine.

Design:
- Enums: the classification vocabularies shared by every module
- ReviewableItem: the unit the engine schedules (question, flashcard, cloze gap)
- Attempt / AnalyticsPayload: append-only answer history
- AnswerOutcome: the scheduling state produced by one answer
- GroupContext: the optional lesson/card record used when aggregating

Items arrive from persistence written by other tools, so every field is
normalized on the way in instead of being rejected. Persisted keys are
camelCase (``totalAttempts``); Python attributes are snake_case. Unknown keys
are the presentation payload and pass through untouched.
"""

from __future__ import annotations

import math
import sys
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from studyorbit.core.timeutil import parse_timestamp, to_iso

# =============================================================================
# Enums
# =============================================================================


class ReviewStatus(str, Enum):
    """Urgency bucket of a due date."""

    OVERDUE = "OVERDUE"
    NOW = "NOW"
    TODAY = "TODAY"
    FUTURE = "FUTURE"


class MasteryTier(str, Enum):
    """Coarse mastery bucket."""

    GOLD = "GOLD"  # >= 85
    SILVER = "SILVER"  # >= 70
    BRONZE = "BRONZE"  # < 70

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryTier.GOLD: "yellow",
            MasteryTier.SILVER: "white",
            MasteryTier.BRONZE: "dark_orange",
        }[self]


class TimingClass(str, Enum):
    """How the response time compares to the expected time."""

    TOO_FAST = "too-fast"
    NORMAL = "normal"
    SLOW = "slow"


class SelfEvalLevel(IntEnum):
    """Learner's own rating of an answer."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def coerce(cls, value: object) -> SelfEvalLevel:
        """Clamp any numeric-ish value to a valid level (GOOD when unreadable)."""
        if isinstance(value, SelfEvalLevel):
            return value
        number = finite_float(value, math.nan)
        if math.isnan(number):
            return cls.GOOD
        return cls(int(max(0, min(3, round(number)))))

    @property
    def grade(self) -> str:
        return self.name.lower()


class SessionPhase(str, Enum):
    """Session-level mode."""

    NEW = "NEW"
    REINFORCE = "REINFORCE"


class NextQuestionStatus(str, Enum):
    """Outcome of asking the session engine for work."""

    READY = "READY"
    WAITING = "WAITING"
    EMPTY = "EMPTY"


class Urgency(str, Enum):
    """Retrievability band of a single item."""

    CRITICAL = "CRITICAL"
    ALERT = "ALERT"
    STABLE = "STABLE"


_LEGACY_TIMING = {
    "RUSH": TimingClass.TOO_FAST,
    "OK": TimingClass.NORMAL,
    "SLOW": TimingClass.SLOW,
}

_PRESENTATION_TEXT_KEYS = ("question_text", "questionText", "text", "front", "prompt", "back")


def finite_float(value: object, default: float) -> float:
    """
    Convert to a finite float.

    Unreadable and non-finite values give `default`; integers too large for a
    float clamp to the largest float of the same sign.
    """
    try:
        number = float(value)  # type: ignore[arg-type]
    except OverflowError:
        return sys.float_info.max if value > 0 else -sys.float_info.max  # type: ignore[operator]
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _timestamp_or_raw(value: object) -> str | None:
    # Unparseable strings are kept: readers treat them as already due.
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, str):
        return value
    return None


# =============================================================================
# Attempt history
# =============================================================================


class AnalyticsPayload(BaseModel):
    """
    Opaque analytics attached to an attempt.

    The scheduler never reads it; it only travels with the attempt record so
    its shape survives the persistence boundary.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_answer: str | None = None
    order_keys: list[str] = Field(default_factory=list)
    trap_code: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_unknown_keys(cls, data: Any) -> Any:
        """Move keys this model does not know into ``extra``."""
        if not isinstance(data, dict):
            return data
        known = set()
        for name, field in cls.model_fields.items():
            known.update({name, field.alias or name})
        unknown = {k: v for k, v in data.items() if k not in known}
        if not unknown:
            return data
        kept = {k: v for k, v in data.items() if k in known}
        extra = kept.get("extra")
        extra = dict(extra) if isinstance(extra, dict) else {}
        extra.update(unknown)
        kept["extra"] = extra
        return kept


class Attempt(BaseModel):
    """One answer in an item's history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    date: str
    was_correct: bool
    mastery_after: float = 0.0
    stability_after: float = 0.0
    difficulty_after: float | None = None
    time_sec: float = 0.0
    self_eval_level: int = SelfEvalLevel.GOOD
    grade: str | None = None
    timing_class: TimingClass | None = None
    target_sec: float | None = None
    analytics: AnalyticsPayload | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _date_string(cls, value: object) -> object:
        return _timestamp_or_raw(value)

    @field_validator("timing_class", mode="before")
    @classmethod
    def _legacy_timing(cls, value: object) -> object:
        if isinstance(value, str) and value.upper() in _LEGACY_TIMING:
            return _LEGACY_TIMING[value.upper()]
        if isinstance(value, str) and value not in {t.value for t in TimingClass}:
            return None
        return value

    @field_validator("self_eval_level", mode="before")
    @classmethod
    def _clamp_self_eval(cls, value: object) -> int:
        return int(SelfEvalLevel.coerce(value))

    @field_validator("time_sec", mode="before")
    @classmethod
    def _non_negative_time(cls, value: object) -> float:
        return max(0.0, finite_float(value, 0.0))


# =============================================================================
# Reviewable item
# =============================================================================


class ReviewableItem(BaseModel):
    """
    A question, flashcard or cloze gap as seen by the scheduler.

    Invariants enforced on construction:
    - mastery_score is clamped to [0, 100]
    - total_attempts is a non-negative integer
    - stability is positive or None (None means "use the default")
    - attempt_history only contains well-formed records
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        validate_assignment=False,
    )

    id: str
    total_attempts: int = 0
    last_was_correct: bool = False
    mastery_score: float = 0.0
    stability: float | None = None
    difficulty: float | None = None
    next_review_date: str | None = None
    last_reviewed_at: str | None = None
    attempt_history: list[Attempt] = Field(default_factory=list)
    lapses: int = 0
    correct_streak: int = 0
    recent_error: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("total_attempts", "lapses", "correct_streak", "recent_error", mode="before")
    @classmethod
    def _non_negative_int(cls, value: object) -> int:
        return max(0, int(finite_float(value, 0.0)))

    @field_validator("last_was_correct", mode="before")
    @classmethod
    def _truthy(cls, value: object) -> bool:
        return bool(value) if value is not None else False

    @field_validator("mastery_score", mode="before")
    @classmethod
    def _clamp_mastery(cls, value: object) -> float:
        return max(0.0, min(100.0, finite_float(value, 0.0)))

    @field_validator("stability", mode="before")
    @classmethod
    def _positive_stability(cls, value: object) -> float | None:
        number = finite_float(value, 0.0)
        return number if number > 0 else None

    @field_validator("difficulty", mode="before")
    @classmethod
    def _clamp_difficulty(cls, value: object) -> float | None:
        if value is None:
            return None
        return max(0.1, min(1.0, finite_float(value, 0.5)))

    @field_validator("next_review_date", "last_reviewed_at", mode="before")
    @classmethod
    def _timestamp(cls, value: object) -> str | None:
        return _timestamp_or_raw(value)

    @field_validator("attempt_history", mode="before")
    @classmethod
    def _drop_bad_attempts(cls, value: object) -> list[Any]:
        if not isinstance(value, list):
            return []
        kept: list[Any] = []
        for raw in value:
            if isinstance(raw, Attempt):
                kept.append(raw)
                continue
            try:
                kept.append(Attempt.model_validate(raw))
            except ValidationError:
                logger.debug("Dropping malformed attempt record: {}", raw)
        return kept

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @classmethod
    def coerce(cls, value: object) -> ReviewableItem | None:
        """
        Build an item from a dict (or return an item unchanged).

        Returns None instead of raising when the input has no usable id.
        """
        if isinstance(value, ReviewableItem):
            return value
        if not isinstance(value, dict):
            logger.debug("Ignoring non-mapping item: {!r}", value)
            return None
        try:
            return cls.model_validate(value)
        except ValidationError as exc:
            logger.debug("Ignoring malformed item: {}", exc.errors()[:1])
            return None

    def to_record(self) -> dict[str, Any]:
        """Persistable dict with camelCase keys and the payload preserved."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def is_new(self) -> bool:
        return self.total_attempts == 0

    @property
    def payload(self) -> dict[str, Any]:
        """Presentation payload (keys the scheduler does not model)."""
        return dict(self.model_extra or {})

    @property
    def next_review_at(self) -> datetime | None:
        return parse_timestamp(self.next_review_date)

    @property
    def last_reviewed(self) -> datetime | None:
        return parse_timestamp(self.last_reviewed_at)

    def presentation_text(self) -> str:
        """Concatenated readable text of the item (prompt plus options)."""
        payload = self.payload
        parts: list[str] = []
        for key in _PRESENTATION_TEXT_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                parts.append(value.strip())
                break

        options = payload.get("options")
        if isinstance(options, dict):
            parts.extend(str(v) for v in options.values() if v)
        elif isinstance(options, list):
            parts.extend(str(v) for v in options if v)

        return " ".join(parts)

    def display_title(self, width: int = 60) -> str:
        """Short single-line title for listings."""
        text = self.presentation_text() or self.id
        text = " ".join(text.split())
        return text if len(text) <= width else text[: width - 1] + "…"


# =============================================================================
# Answer outcome / answers / group context
# =============================================================================


class AnswerOutcome(BaseModel):
    """Next scheduling state of an item after one answer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mastery_score: float
    stability: float
    difficulty: float
    next_review_date: str
    last_reviewed_at: str
    timing_class: TimingClass
    target_sec: float
    grade: str
    last_was_correct: bool


class AnswerRecord(BaseModel):
    """An answer collected during a session, waiting to be applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_id: str
    was_correct: bool
    self_eval_level: int = SelfEvalLevel.GOOD
    time_sec: float = 0.0
    analytics: AnalyticsPayload | None = None

    @field_validator("self_eval_level", mode="before")
    @classmethod
    def _clamp_self_eval(cls, value: object) -> int:
        return int(SelfEvalLevel.coerce(value))

    @field_validator("time_sec", mode="before")
    @classmethod
    def _non_negative_time(cls, value: object) -> float:
        return max(0.0, finite_float(value, 0.0))


class GroupContext(BaseModel):
    """
    The lesson/card record a group of items belongs to.

    Only its own schedule matters to aggregation: next_review_date,
    mastery_score and the completion time of the last study cycle.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    next_review_date: str | None = None
    mastery_score: float = 0.0
    last_cycle_completed_at: str | None = None

    @field_validator("mastery_score", mode="before")
    @classmethod
    def _clamp_mastery(cls, value: object) -> float:
        return max(0.0, min(100.0, finite_float(value, 0.0)))

    @field_validator("next_review_date", "last_cycle_completed_at", mode="before")
    @classmethod
    def _timestamp(cls, value: object) -> str | None:
        return _timestamp_or_raw(value)
