"""Learning velocity and burnout estimation over the session window."""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Sequence

from learning_brain.models import LearningVelocity, Session, VelocityTrend

ACCELERATING_RATIO = 1.2
DECELERATING_RATIO = 0.8
BURNOUT_MIN_SESSIONS = 10
BURNOUT_RECENT_SESSIONS = 3


def weeks_spanned(sessions: Sequence[Session], now: datetime) -> float:
    """Weeks from the oldest session to now, never less than one."""
    days = (now - sessions[-1].timestamp).total_seconds() / 86400
    return max(days / 7, 1.0)


def velocity_trend(sessions: Sequence[Session]) -> VelocityTrend:
    """Compare mean mastery delta of the recent half against the older half."""
    middle = len(sessions) // 2
    recent = sessions[:middle]
    older = sessions[middle:]

    recent_mean = sum(s.mastery_delta for s in recent) / (len(recent) or 1)
    older_mean = sum(s.mastery_delta for s in older) / (len(older) or 1)

    if recent_mean > older_mean * ACCELERATING_RATIO:
        return "accelerating"
    if recent_mean < older_mean * DECELERATING_RATIO:
        return "decelerating"
    return "stable"


def predict_burnout(sessions: Sequence[Session], trend: VelocityTrend) -> bool:
    if trend != "decelerating" or len(sessions) <= BURNOUT_MIN_SESSIONS:
        return False
    return all(s.attention_quality == "declining" for s in sessions[:BURNOUT_RECENT_SESSIONS])


def calculate_learning_velocity(
    sessions: Sequence[Session],
    now: datetime,
    skill_domains: Mapping[str, str] | None = None,
) -> LearningVelocity:
    """Compute overall and per-domain velocity for sessions ordered newest first.

    skill_domains maps skill ids to their domain; sessions on unknown skills are
    counted under "unknown" in by_category.
    """
    if not sessions:
        return LearningVelocity()

    weeks = weeks_spanned(sessions, now)
    overall = sum(s.mastery_delta for s in sessions) / weeks

    domains = skill_domains or {}
    totals: dict[str, float] = {}
    for session in sessions:
        domain = domains.get(session.skill_id or "", "unknown")
        totals[domain] = totals.get(domain, 0.0) + session.mastery_delta
    by_category = {domain: total / weeks for domain, total in sorted(totals.items())}

    trend = velocity_trend(sessions)
    return LearningVelocity(
        overall=overall,
        by_category=by_category,
        trend=trend,
        predicted_burnout=predict_burnout(sessions, trend),
    )
