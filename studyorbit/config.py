"""
Configuration settings for the studyorbit scheduling engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with STUDYORBIT_ (e.g. STUDYORBIT_PENALTY_MINUTES).
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Scheduler settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STUDYORBIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Stability (days)
    # ========================================
    default_stability_days: float = Field(
        default=1.0,
        description="Stability assigned to items that have never been reviewed",
    )
    stability_floor_days: float = Field(
        default=0.5,
        description="Stability never drops below this value",
    )
    stability_cap_days: float = Field(
        default=365.0,
        description="Maximum stability (and therefore maximum interval)",
    )

    # ─── Growth / contraction ───────────────────────────────────────────────
    alpha_easy: float = Field(default=0.30, description="Stability growth for EASY answers")
    alpha_good: float = Field(default=0.22, description="Stability growth for GOOD answers")
    alpha_hard: float = Field(default=0.12, description="Stability growth for HARD answers")
    gamma_fail: float = Field(
        default=0.50,
        description="Multiplier applied to stability after a wrong answer",
    )
    k_rt_bonus: float = Field(
        default=0.06,
        description="Extra stability growth for a fluent (fast, non-rushed) answer",
    )

    # ========================================
    # Response timing
    # ========================================
    rt_fast: float = Field(
        default=0.50,
        description="Answers faster than rt_fast * targetSec are 'too-fast'",
    )
    rt_slow: float = Field(
        default=1.50,
        description="Answers slower than rt_slow * targetSec are 'slow'",
    )
    reading_chars_per_sec: float = Field(
        default=15.0,
        description="Reading speed used to derive targetSec from content length",
    )
    base_think_sec: float = Field(
        default=5.0,
        description="Fixed thinking time added to the reading time",
    )
    min_target_sec: float = Field(default=8.0, description="Lower bound for targetSec")
    max_target_sec: float = Field(default=120.0, description="Upper bound for targetSec")

    # ========================================
    # Mastery (0-100)
    # ========================================
    mastery_gain: float = Field(
        default=18.0,
        description="Mastery points gained by a GOOD answer on a fresh item",
    )
    fast_mastery_damping: float = Field(
        default=0.4,
        description="Fraction of the mastery gain kept when a correct answer was too fast",
    )
    mastery_fail_penalty: float = Field(
        default=0.35,
        description="Fraction of current mastery lost on a wrong answer",
    )
    min_fail_penalty: float = Field(
        default=10.0,
        description="Minimum mastery points lost on a wrong answer",
    )
    retention_floor: float = Field(
        default=0.25,
        description="Fraction of mastery the decayed domain saturates to",
    )
    fail_review_delay_minutes: float = Field(
        default=10.0,
        description="Minutes until a wrongly answered item is due again",
    )

    # ========================================
    # Session / review status (exact product constants)
    # ========================================
    penalty_minutes: float = Field(
        default=10.0,
        description="Penalty box duration after a wrong answer inside a session",
    )
    grace_hours: float = Field(
        default=6.0,
        description="Hours past the due date still classified as NOW",
    )
    window_hours: float = Field(
        default=12.0,
        description="Hours before the due date already classified as NOW",
    )
    group_override_buffer_minutes: float = Field(
        default=5.0,
        description="A group date must be this far in the future to override item dates",
    )
    visual_decay_floor: float = Field(
        default=40.0,
        description="Lowest mastery the between-cycle visual decay interpolates to",
    )
    gold_window_hours: float = Field(
        default=12.0,
        description="Half-width of the gold review window around the due date",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(default="INFO", description="Log level for the CLI sink")

    @property
    def penalty_ms(self) -> int:
        """Penalty box duration in milliseconds."""
        return int(round(self.penalty_minutes * 60 * 1000))

    def get_self_eval_alphas(self) -> dict[int, float]:
        """Stability growth factor per self-evaluation level."""
        return {
            1: self.alpha_hard,
            2: self.alpha_good,
            3: self.alpha_easy,
        }


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """Get cached settings instance."""
    return SchedulerSettings()


def resolve_settings(settings: SchedulerSettings | None) -> SchedulerSettings:
    """Return the given settings or the cached defaults."""
    return settings if settings is not None else get_settings()
