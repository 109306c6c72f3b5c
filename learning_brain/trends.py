"""Per-skill trend classification and struggling indicators."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from learning_brain.models import QuestionAttempt, SkillRecord, SkillState, SkillTrend

RECENT_WINDOW = 5

LOW_SUCCESS_RATE = 0.4
WEAK_REASONING = 2.5
LOW_MASTERY = 30
LOW_MASTERY_MIN_ATTEMPTS = 10
GUESSING_COUNT = 3
RUSHING_COUNT = 4
STUCK_INDICATOR_COUNT = 3


def mean_reasoning(attempts: Sequence[QuestionAttempt]) -> Optional[float]:
    """Mean reasoning quality over attempts that carry one, None if none do."""
    scores = [a.reasoning_quality for a in attempts if a.reasoning_quality is not None]
    if not scores:
        return None
    return sum(scores) / len(scores)


def struggling_indicators(
    skill: SkillRecord, last_attempts: Sequence[QuestionAttempt]
) -> list[str]:
    """Evaluate each indicator independently over the most recent attempts."""
    if not last_attempts:
        return []

    correct_rate = sum(1 for a in last_attempts if a.correctness == "correct") / len(last_attempts)
    avg_reasoning = mean_reasoning(last_attempts)

    indicators: list[str] = []
    # Two correct out of five already counts as a low success rate
    if correct_rate <= LOW_SUCCESS_RATE:
        indicators.append("low_success_rate")
    if avg_reasoning is not None and avg_reasoning < WEAK_REASONING:
        indicators.append("weak_reasoning")
    if skill.mastery < LOW_MASTERY and skill.total_attempts > LOW_MASTERY_MIN_ATTEMPTS:
        indicators.append("stuck_at_low_mastery")
    if sum(1 for a in last_attempts if a.answer_style == "guess") >= GUESSING_COUNT:
        indicators.append("frequent_guessing")
    if sum(1 for a in last_attempts if a.answer_style == "rushed") >= RUSHING_COUNT:
        indicators.append("rushing_through")
    return indicators


def classify_trend(
    indicators: Sequence[str], correct_rate: float, avg_reasoning: Optional[float]
) -> SkillTrend:
    """Precedence: stuck, declining, improving, stable."""
    if len(indicators) >= STUCK_INDICATOR_COUNT:
        return "stuck"
    if avg_reasoning is None:
        return "stable"
    if correct_rate < 0.5 and avg_reasoning < 3:
        return "declining"
    if correct_rate > 0.7 and avg_reasoning > 3.5:
        return "improving"
    return "stable"


def attempt_score(attempt: QuestionAttempt) -> int:
    """Signed mastery score of a single attempt."""
    if attempt.correctness == "correct":
        reasoning = attempt.reasoning_quality
        return 3 if reasoning is not None and reasoning >= 4 else 2
    if attempt.correctness == "partial":
        return 0
    return -3 if attempt.confidence_level == "high" else -2


def skill_velocity(
    attempts: Sequence[QuestionAttempt], now: datetime, window_days: int = 7
) -> float:
    """Mean attempt score times the number of attempts in the trailing window.

    This is a throughput proxy, not a calibrated points-per-week rate.
    """
    since = now - timedelta(days=window_days)
    scores = [attempt_score(a) for a in attempts if a.timestamp > since]
    if not scores:
        return 0.0
    return sum(scores) / len(scores) * len(scores)


def analyze_skill_trend(
    skill: SkillRecord,
    recent_attempts: Sequence[QuestionAttempt],
    now: datetime,
    velocity_window_days: int = 7,
) -> SkillState:
    """Build a SkillState from a skill record and its attempts (newest first)."""
    if not recent_attempts:
        return SkillState(
            id=skill.id,
            domain=skill.domain,
            mastery=skill.mastery,
            trend="stable",
            velocity=0.0,
            last_practiced=skill.last_seen,
            struggling_indicators=[],
        )

    last_attempts = list(recent_attempts[:RECENT_WINDOW])
    correct_rate = sum(1 for a in last_attempts if a.correctness == "correct") / len(last_attempts)
    avg_reasoning = mean_reasoning(last_attempts)
    indicators = struggling_indicators(skill, last_attempts)

    return SkillState(
        id=skill.id,
        domain=skill.domain,
        mastery=skill.mastery,
        trend=classify_trend(indicators, correct_rate, avg_reasoning),
        velocity=skill_velocity(recent_attempts, now, velocity_window_days),
        last_practiced=skill.last_seen,
        struggling_indicators=indicators,
    )
