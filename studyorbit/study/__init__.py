"""
Study Module.

Provides the scheduling engine:
- Retention model (FSRS-style stability, decayed domain)
- Review status classification and aggregation
- Practice session queueing
"""

from studyorbit.study.retention_engine import RetentionModel
from studyorbit.study.review_status import ReviewStatusClassifier
from studyorbit.study.session_engine import SessionEngine

__all__ = [
    "RetentionModel",
    "ReviewStatusClassifier",
    "SessionEngine",
]
