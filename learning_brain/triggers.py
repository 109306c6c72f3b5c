"""Automatic intervention triggers.

Reflex rules run after every attempt, session rules when a session closes, and
the weekly analysis on a cron. Rules are plain data: a name, a priority, a pure
condition and an action. Every rule is evaluated independently, in table order,
so several may fire for the same event.

Notes written by rules carry a deterministic idempotency key; the store drops
repeats, so re-evaluating the same event does not duplicate notes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

from learning_brain.brain import LearningBrain
from learning_brain.models import (
    AttemptContext,
    GeneratedContent,
    Intervention,
    Note,
    NoteType,
    SessionContext,
    TriggerPriority,
    WeeklyReport,
)
from learning_brain.services.store import StoreError

log = logging.getLogger(__name__)

C = TypeVar("C", AttemptContext, SessionContext)


@dataclass(frozen=True)
class TriggerRule(Generic[C]):
    name: str
    priority: TriggerPriority
    condition: Callable[[C], bool]
    action: Callable[["InterventionTriggers", C, str], None]


# ========== REFLEX CONDITIONS (per attempt) ==========


def three_wrong_in_row(ctx: AttemptContext) -> bool:
    """Last 3 attempts incorrect, at least 2 of them with high confidence."""
    last3 = ctx.recent_attempts[:3]
    return (
        len(last3) == 3
        and all(a.correctness == "incorrect" for a in last3)
        and sum(1 for a in last3 if a.confidence_level == "high") >= 2
    )


def rapid_guessing(ctx: AttemptContext) -> bool:
    seconds = ctx.attempt.time_to_answer_seconds
    return seconds is not None and seconds < 3 and ctx.attempt.correctness == "incorrect"


def unusually_slow(ctx: AttemptContext) -> bool:
    seconds = ctx.attempt.time_to_answer_seconds
    average = ctx.average_time_seconds
    return bool(average) and seconds is not None and seconds > average * 5


def perfect_streak_broken(ctx: AttemptContext) -> bool:
    attempts = ctx.recent_attempts
    if len(attempts) < 6:
        return False
    return (
        all(a.correctness == "correct" for a in attempts[1:6])
        and attempts[0].correctness == "incorrect"
    )


# ========== SESSION CONDITIONS (per session close) ==========


def no_progress_in_session(ctx: SessionContext) -> bool:
    return ctx.session.mastery_delta <= 0 and ctx.session.questions_attempted >= 5


def declining_attention(ctx: SessionContext) -> bool:
    """Reasoning of the first two attempts beats the last two by more than 1.5."""
    attempts = ctx.session_attempts
    if len(attempts) < 4:
        return False
    first2 = [a.reasoning_quality for a in attempts[:2]]
    last2 = [a.reasoning_quality for a in attempts[-2:]]
    if None in first2 or None in last2:
        return False
    return sum(first2) / 2 - sum(last2) / 2 > 1.5


def mastery_threshold_reached(ctx: SessionContext) -> bool:
    if ctx.new_mastery is None or ctx.old_mastery is None:
        return False
    return ctx.new_mastery >= 70 and ctx.old_mastery < 70


# ========== ACTIONS ==========


def _reteach_now(triggers: "InterventionTriggers", ctx: AttemptContext, key: str) -> None:
    triggers.create_urgent_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        "CRITICAL: Student has misconception. Got 3 wrong with high confidence. "
        "STOP and reteach concept.",
        key,
    )
    content = triggers.brain.generate_intervention(
        Intervention(
            type="concept_reteach",
            priority="urgent",
            skill_id=ctx.skill_id,
            reason="Misconception detected",
            suggested_action="Immediate concept reteach",
            estimated_impact=95,
        ),
        ctx.user_id,
    )
    if content is not None:
        triggers.create_note(
            ctx.user_id,
            ctx.skill_id,
            ctx.session_id,
            content_note_text(content),
            "intervention",
            f"{key}:content",
        )


def _note_rapid_guessing(triggers: "InterventionTriggers", ctx: AttemptContext, key: str) -> None:
    triggers.create_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        "Student rushing/guessing. Questions may be too hard or student is disengaged.",
        "pattern",
        key,
    )


def _note_unusually_slow(triggers: "InterventionTriggers", ctx: AttemptContext, key: str) -> None:
    triggers.create_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        f"Question took {ctx.attempt.time_to_answer_seconds:g}s "
        f"(avg: {ctx.average_time_seconds:g}s). Something is confusing here.",
        "insight",
        key,
    )


def _note_streak_broken(triggers: "InterventionTriggers", ctx: AttemptContext, key: str) -> None:
    triggers.create_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        "Broke perfect streak. This question revealed a gap. Mark for review.",
        "insight",
        key,
    )


def _reanalyze(triggers: "InterventionTriggers", ctx: SessionContext, key: str) -> None:
    triggers.create_urgent_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        f"Session complete but NO mastery gain ({ctx.session.questions_attempted} questions). "
        "Need different approach.",
        key,
    )
    triggers.brain.analyze_student(ctx.user_id)


def _note_attention_drop(triggers: "InterventionTriggers", ctx: SessionContext, key: str) -> None:
    triggers.create_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        "Attention declined during session. Started strong, ended weak. "
        "Sessions may be too long.",
        "pattern",
        key,
    )


def _celebrate(triggers: "InterventionTriggers", ctx: SessionContext, key: str) -> None:
    skill_name = ctx.skill_name or ctx.skill_id or "This skill"
    triggers.create_note(
        ctx.user_id,
        ctx.skill_id,
        ctx.session_id,
        f"🎉 Mastery threshold reached! {skill_name} is now at {ctx.new_mastery:g}%. "
        "Ready for harder challenges.",
        "celebration",
        key,
    )


IMMEDIATE_TRIGGERS: tuple[TriggerRule[AttemptContext], ...] = (
    TriggerRule("three_wrong_in_row", "critical", three_wrong_in_row, _reteach_now),
    TriggerRule("rapid_guessing", "high", rapid_guessing, _note_rapid_guessing),
    TriggerRule("unusually_slow", "medium", unusually_slow, _note_unusually_slow),
    TriggerRule("perfect_streak_broken", "medium", perfect_streak_broken, _note_streak_broken),
)

SESSION_TRIGGERS: tuple[TriggerRule[SessionContext], ...] = (
    TriggerRule("no_progress_in_session", "high", no_progress_in_session, _reanalyze),
    TriggerRule("declining_attention", "high", declining_attention, _note_attention_drop),
    TriggerRule("mastery_threshold_reached", "medium", mastery_threshold_reached, _celebrate),
)


class InterventionTriggers:
    """Evaluates the rule tables and writes the resulting notes."""

    def __init__(
        self,
        brain: LearningBrain,
        immediate_rules: Sequence[TriggerRule[AttemptContext]] = IMMEDIATE_TRIGGERS,
        session_rules: Sequence[TriggerRule[SessionContext]] = SESSION_TRIGGERS,
    ):
        self.brain = brain
        self.store = brain.store
        self.immediate_rules = immediate_rules
        self.session_rules = session_rules

    def check_immediate_triggers(self, ctx: AttemptContext) -> list[str]:
        """Run reflex rules for one attempt. Returns the names of the rules that fired."""
        return self._run(
            self.immediate_rules,
            ctx,
            lambda rule: f"{rule.name}:{ctx.session_id}:{ctx.attempt_index}",
        )

    def check_session_triggers(self, ctx: SessionContext) -> list[str]:
        """Run session rules for a closed session. Returns the names of the rules that fired."""
        return self._run(self.session_rules, ctx, lambda rule: f"{rule.name}:{ctx.session_id}")

    def _run(self, rules, ctx, key_for) -> list[str]:
        fired = []
        for rule in rules:
            try:
                if not rule.condition(ctx):
                    continue
                fired.append(rule.name)
                log.info(f"Trigger activated: {rule.name} (user={ctx.user_id}, priority={rule.priority})")
                rule.action(self, ctx, key_for(rule))
            except Exception:
                log.exception(f"Error in trigger {rule.name}")
        return fired

    def run_weekly_analysis(self, user_id: str) -> WeeklyReport:
        """Deep analysis plus a single summary note."""
        log.info(f"Running weekly deep analysis for {user_id}")
        analysis = self.brain.analyze_student(user_id)

        report = WeeklyReport(
            user_id=user_id,
            skills_analyzed=len(analysis.current_skills),
            struggling_count=sum(1 for s in analysis.current_skills if s.trend == "stuck"),
            improving_count=sum(1 for s in analysis.current_skills if s.trend == "improving"),
            velocity=analysis.learning_velocity,
            patterns=analysis.behavioral_patterns,
            interventions=analysis.interventions_needed,
        )

        year, week, _ = self.brain.clock().isocalendar()
        needs_attention = report.struggling_count > 2
        self._insert(
            Note(
                user_id=user_id,
                text=weekly_summary(report),
                note_type="insight",
                priority="high" if needs_attention else "medium",
                actionable=needs_attention,
                idempotency_key=f"weekly_analysis:{user_id}:{year}-W{week:02d}",
            )
        )

        log.info(
            f"Weekly analysis complete for {user_id}: struggling={report.struggling_count}, "
            f"improving={report.improving_count}, interventions={len(report.interventions)}"
        )
        return report

    # ========== NOTE HELPERS ==========

    def create_note(
        self,
        user_id: str,
        skill_id: Optional[str],
        session_id: Optional[str],
        comment: str,
        note_type: NoteType,
        key: Optional[str] = None,
    ) -> None:
        self._insert(
            Note(
                user_id=user_id,
                text=comment,
                related_skill_id=skill_id,
                related_session_id=session_id,
                note_type=note_type,
                priority="medium",
                actionable=note_type == "intervention",
                idempotency_key=key,
            )
        )

    def create_urgent_note(
        self,
        user_id: str,
        skill_id: Optional[str],
        session_id: Optional[str],
        comment: str,
        key: Optional[str] = None,
    ) -> None:
        self._insert(
            Note(
                user_id=user_id,
                text=f"⚠️ {comment}",
                related_skill_id=skill_id,
                related_session_id=session_id,
                note_type="intervention",
                priority="high",
                actionable=True,
                idempotency_key=key,
            )
        )

    def _insert(self, note: Note) -> None:
        try:
            if not self.store.insert_note(note):
                log.debug(f"Duplicate note ignored: {note.idempotency_key}")
        except StoreError as e:
            log.warning(f"Could not store note for {note.user_id}: {e}")


def content_note_text(content: GeneratedContent) -> str:
    """Readable note for realized intervention content."""
    text = f"[CONTENT] {content.type} for {content.skill_name or content.skill_id}."
    if content.lesson is not None:
        text += (
            f" Explanation: {content.lesson.new_explanation}"
            f" Example: {content.lesson.example}"
            f" Practice: {content.lesson.guided_practice}"
        )
    if content.message:
        text += f" {content.message}"
    if content.questions:
        text += " Questions: " + " | ".join(q.question for q in content.questions)
    return text


def weekly_summary(report: WeeklyReport) -> str:
    text = (
        f"Weekly Analysis: {report.struggling_count} skills need attention, "
        f"{report.improving_count} improving. "
        f"Velocity: {report.velocity.overall:.1f} pts/week."
    )
    if report.patterns:
        text += " Patterns: " + ", ".join(p.pattern for p in report.patterns) + "."
    if report.interventions:
        text += " Interventions: " + "; ".join(
            f"{i.priority} {i.type}" + (f" ({i.skill_id})" if i.skill_id else "")
            for i in report.interventions
        ) + "."
    return text
