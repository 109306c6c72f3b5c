"""Cross-session behavioral pattern detection.

All detectors take the sessions of the trailing window, newest first, and return
at most one pattern each. Sessions without an average reasoning quality are left
out of every comparison that needs it.
"""

from __future__ import annotations

from datetime import timezone, tzinfo
from functools import partial
from typing import Optional, Sequence

from learning_brain.models import BehavioralPattern, Session

MIN_SESSIONS_PER_DAYPART = 3
DAYPART_GAP = 0.5
SESSION_LENGTH_MIN_SESSIONS = 3
SESSION_LENGTH_CONFIDENCE = 70
ATTENTION_MIN_SESSIONS = 5
ATTENTION_DROP = 0.7
ATTENTION_CONFIDENCE = 80


def _scored(sessions: Sequence[Session]) -> list[Session]:
    return [s for s in sessions if s.average_reasoning_quality is not None]


def _mean_quality(sessions: Sequence[Session]) -> float:
    return sum(s.average_reasoning_quality for s in sessions) / len(sessions)


def session_length_bucket(session: Session) -> str:
    if session.questions_attempted <= 3:
        return "short"
    if session.questions_attempted <= 6:
        return "medium"
    return "long"


def detect_time_of_day(
    sessions: Sequence[Session], tz: tzinfo = timezone.utc
) -> Optional[BehavioralPattern]:
    """Morning and afternoon are split at noon in the student's timezone."""
    scored = _scored(sessions)
    morning = [s for s in scored if s.timestamp.astimezone(tz).hour < 12]
    afternoon = [s for s in scored if s.timestamp.astimezone(tz).hour >= 12]
    if len(morning) < MIN_SESSIONS_PER_DAYPART or len(afternoon) < MIN_SESSIONS_PER_DAYPART:
        return None

    morning_avg = _mean_quality(morning)
    afternoon_avg = _mean_quality(afternoon)
    gap = abs(morning_avg - afternoon_avg)
    if gap <= DAYPART_GAP:
        return None

    return BehavioralPattern(
        pattern="performs_better_morning" if morning_avg > afternoon_avg else "performs_better_afternoon",
        confidence=min(gap * 20, 100),
        first_seen=scored[-1].timestamp,
        occurrences=min(len(morning), len(afternoon)),
        impact="positive",
    )


def detect_optimal_session_length(sessions: Sequence[Session]) -> Optional[BehavioralPattern]:
    scored = _scored(sessions)
    buckets: dict[str, list[Session]] = {"short": [], "medium": [], "long": []}
    for session in scored:
        buckets[session_length_bucket(session)].append(session)

    best_name: Optional[str] = None
    best_avg = 0.0
    for name, members in buckets.items():
        if not members:
            continue
        avg = _mean_quality(members)
        # Ties keep the shorter bucket
        if best_name is None or avg > best_avg:
            best_name, best_avg = name, avg

    if best_name is None or len(buckets[best_name]) < SESSION_LENGTH_MIN_SESSIONS:
        return None

    return BehavioralPattern(
        pattern=f"optimal_session_length_{best_name}",
        confidence=SESSION_LENGTH_CONFIDENCE,
        first_seen=scored[-1].timestamp,
        occurrences=len(buckets[best_name]),
        impact="positive",
    )


def detect_attention_decline(sessions: Sequence[Session]) -> Optional[BehavioralPattern]:
    scored = _scored(sessions)
    if len(scored) < ATTENTION_MIN_SESSIONS:
        return None

    newest = scored[:3]
    oldest = scored[-3:]
    if _mean_quality(oldest) - _mean_quality(newest) <= ATTENTION_DROP:
        return None

    return BehavioralPattern(
        pattern="attention_declining_over_time",
        confidence=ATTENTION_CONFIDENCE,
        first_seen=newest[0].timestamp,
        occurrences=3,
        impact="negative",
    )


def detect_behavioral_patterns(
    sessions: Sequence[Session], tz: tzinfo = timezone.utc
) -> list[BehavioralPattern]:
    """Run every detector over the window, in a fixed order."""
    patterns = []
    detectors = (
        partial(detect_time_of_day, tz=tz),
        detect_optimal_session_length,
        detect_attention_decline,
    )
    for detector in detectors:
        pattern = detector(sessions)
        if pattern is not None:
            patterns.append(pattern)
    return patterns
