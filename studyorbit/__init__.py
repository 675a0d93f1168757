"""
StudyOrbit - spaced-repetition scheduling engine.

Provides:
- Per-item retention model (domain decay, answer scheduling)
- Review status classification and lesson aggregation
- Single-session question queue (penalty box + two-phase drilling)
"""

from studyorbit.config import SchedulerSettings, get_settings
from studyorbit.core.models import (
    AnalyticsPayload,
    AnswerOutcome,
    AnswerRecord,
    Attempt,
    GroupContext,
    MasteryTier,
    NextQuestionStatus,
    ReviewableItem,
    ReviewStatus,
    SelfEvalLevel,
    SessionPhase,
    TimingClass,
    Urgency,
)
from studyorbit.study.progress import SessionResult, process_session_result
from studyorbit.study.retention_engine import (
    RetentionModel,
    apply_answer,
    current_domain,
    record_answer,
    reinforcement_priority,
)
from studyorbit.study.review_status import (
    AggregatedStats,
    ReviewStatusClassifier,
    aggregate,
    status,
    tier,
)
from studyorbit.study.session_engine import NextQuestion, SessionEngine

__version__ = "1.0.0"

__all__ = [
    "SchedulerSettings",
    "get_settings",
    "AnalyticsPayload",
    "AnswerOutcome",
    "AnswerRecord",
    "Attempt",
    "GroupContext",
    "MasteryTier",
    "NextQuestionStatus",
    "ReviewableItem",
    "ReviewStatus",
    "SelfEvalLevel",
    "SessionPhase",
    "TimingClass",
    "Urgency",
    "RetentionModel",
    "apply_answer",
    "current_domain",
    "record_answer",
    "reinforcement_priority",
    "AggregatedStats",
    "ReviewStatusClassifier",
    "aggregate",
    "status",
    "tier",
    "NextQuestion",
    "SessionEngine",
    "SessionResult",
    "process_session_result",
]
