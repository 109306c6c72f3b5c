"""Tests for reflex, session and weekly triggers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from learning_brain.brain import LearningBrain
from learning_brain.models import AttemptContext, QuestionAttempt, Session, SessionContext, SkillRecord
from learning_brain.services.store import JsonStore
from learning_brain.triggers import (
    IMMEDIATE_TRIGGERS,
    InterventionTriggers,
    TriggerRule,
    declining_attention,
    mastery_threshold_reached,
    no_progress_in_session,
    perfect_streak_broken,
    rapid_guessing,
    three_wrong_in_row,
    unusually_slow,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeLLM:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    def generate_completion(self, prompt: str, temperature: float, max_tokens: int) -> str:
        self.prompts.append(prompt)
        return '{"new_explanation": "a", "example": "b", "guided_practice": "c"}'


def _attempt(correctness, confidence="medium", seconds=10.0, reasoning=3.0, minutes_ago=0):
    return QuestionAttempt(
        skill_id="fractions",
        correctness=correctness,
        confidence_level=confidence,
        reasoning_quality=reasoning,
        time_to_answer_seconds=seconds,
        timestamp=NOW - timedelta(minutes=minutes_ago),
    )


def _ctx(attempts, average=None, index=7):
    return AttemptContext(
        user_id="kid-1",
        skill_id="fractions",
        session_id="sess-1",
        recent_attempts=attempts,
        average_time_seconds=average,
        attempt_index=index,
    )


def _session_ctx(delta=1.0, questions=5, attempts=(), old=None, new=None):
    return SessionContext(
        user_id="kid-1",
        session=Session(
            id="sess-1",
            skill_id="fractions",
            mastery_delta=delta,
            questions_attempted=questions,
            timestamp=NOW,
        ),
        session_attempts=list(attempts),
        skill_name="Comparing Fractions",
        old_mastery=old,
        new_mastery=new,
    )


def _triggers(tmp_path, llm=None):
    store = JsonStore(tmp_path)
    store.save_skill(
        SkillRecord(id="fractions", user_id="kid-1", domain="fractions", mastery=40, total_attempts=12)
    )
    brain = LearningBrain(store, llm=llm, clock=lambda: NOW)
    return InterventionTriggers(brain), store


# ========== REFLEX CONDITIONS ==========


def test_three_wrong_in_row_needs_two_high_confidence():
    two_high = [_attempt("incorrect", "high"), _attempt("incorrect", "high"), _attempt("incorrect", "low")]
    one_high = [_attempt("incorrect", "high"), _attempt("incorrect", "low"), _attempt("incorrect", "low")]
    one_right = [_attempt("incorrect", "high"), _attempt("correct", "high"), _attempt("incorrect", "high")]

    assert three_wrong_in_row(_ctx(two_high)) is True
    assert three_wrong_in_row(_ctx(one_high)) is False
    assert three_wrong_in_row(_ctx(one_right)) is False
    assert three_wrong_in_row(_ctx(two_high[:2])) is False


@pytest.mark.parametrize(
    "correctness,seconds,expected",
    [
        ("incorrect", 2.0, True),
        ("correct", 2.0, False),
        ("incorrect", 3.0, False),
        ("incorrect", None, False),
    ],
)
def test_rapid_guessing(correctness, seconds, expected):
    assert rapid_guessing(_ctx([_attempt(correctness, seconds=seconds)])) is expected


def test_unusually_slow_needs_an_average():
    slow = [_attempt("correct", seconds=60.0)]

    assert unusually_slow(_ctx(slow, average=10.0)) is True
    assert unusually_slow(_ctx(slow, average=12.0)) is False
    assert unusually_slow(_ctx(slow, average=None)) is False


def test_perfect_streak_broken():
    streak = [_attempt("correct", minutes_ago=m) for m in range(1, 6)]

    assert perfect_streak_broken(_ctx([_attempt("incorrect")] + streak)) is True
    assert perfect_streak_broken(_ctx([_attempt("correct")] + streak)) is False
    assert perfect_streak_broken(_ctx([_attempt("incorrect")] + streak[:4])) is False
    assert perfect_streak_broken(
        _ctx([_attempt("incorrect")] + streak[:4] + [_attempt("partial")])
    ) is False


# ========== SESSION CONDITIONS ==========


def test_no_progress_in_session():
    assert no_progress_in_session(_session_ctx(delta=0, questions=5)) is True
    assert no_progress_in_session(_session_ctx(delta=-2, questions=4)) is False
    assert no_progress_in_session(_session_ctx(delta=0.5, questions=8)) is False


def test_declining_attention_compares_first_and_last_two():
    dropping = [_attempt("correct", reasoning=r) for r in (5, 4, 3, 3, 2)]
    flat = [_attempt("correct", reasoning=r) for r in (4, 4, 3, 3)]
    missing = [_attempt("correct", reasoning=r) for r in (5, None, 1, 1)]

    assert declining_attention(_session_ctx(attempts=dropping)) is True
    assert declining_attention(_session_ctx(attempts=flat)) is False
    assert declining_attention(_session_ctx(attempts=missing)) is False
    assert declining_attention(_session_ctx(attempts=dropping[:3])) is False


def test_mastery_threshold_reached_only_on_crossing():
    assert mastery_threshold_reached(_session_ctx(old=65, new=72)) is True
    assert mastery_threshold_reached(_session_ctx(old=70, new=75)) is False
    assert mastery_threshold_reached(_session_ctx(old=60, new=69)) is False
    assert mastery_threshold_reached(_session_ctx(old=None, new=80)) is False


# ========== EVALUATION ==========


def test_critical_trigger_writes_urgent_note_and_generates_reteach(tmp_path):
    llm = FakeLLM()
    triggers, store = _triggers(tmp_path, llm)
    attempts = [_attempt("incorrect", "high", seconds=2.0)] + [
        _attempt("incorrect", "high", minutes_ago=m) for m in (1, 2)
    ]

    fired = triggers.check_immediate_triggers(_ctx(attempts))

    assert fired == ["three_wrong_in_row", "rapid_guessing"]
    notes = store.list_notes("kid-1")
    assert notes[0].text.startswith("⚠️ CRITICAL: Student has misconception.")
    assert (notes[0].note_type, notes[0].priority, notes[0].actionable) == ("intervention", "high", True)
    assert notes[0].idempotency_key == "three_wrong_in_row:sess-1:7"
    assert notes[1].text == "[CONTENT] concept_reteach for fractions. Explanation: a Example: b Practice: c"
    assert (notes[1].note_type, notes[1].actionable) == ("intervention", True)
    assert notes[1].idempotency_key == "three_wrong_in_row:sess-1:7:content"
    assert (notes[2].note_type, notes[2].priority, notes[2].actionable) == ("pattern", "medium", False)
    assert len(llm.prompts) == 1


def test_critical_trigger_without_generated_content_keeps_urgent_note(tmp_path):
    triggers, store = _triggers(tmp_path)
    attempts = [_attempt("incorrect", "high", minutes_ago=m) for m in range(3)]

    fired = triggers.check_immediate_triggers(_ctx(attempts))

    assert fired == ["three_wrong_in_row"]
    assert [n.idempotency_key for n in store.list_notes("kid-1")] == ["three_wrong_in_row:sess-1:7"]


def test_reevaluating_same_attempt_does_not_duplicate_notes(tmp_path):
    triggers, store = _triggers(tmp_path)
    ctx = _ctx([_attempt("incorrect", seconds=1.5)])

    triggers.check_immediate_triggers(ctx)
    triggers.check_immediate_triggers(ctx)
    triggers.check_immediate_triggers(ctx.model_copy(update={"attempt_index": 8}))

    assert [n.idempotency_key for n in store.list_notes("kid-1")] == [
        "rapid_guessing:sess-1:7",
        "rapid_guessing:sess-1:8",
    ]


def test_failing_rule_does_not_stop_later_rules(tmp_path):
    def explode(triggers, ctx, key):
        raise RuntimeError("boom")

    triggers, store = _triggers(tmp_path)
    triggers.immediate_rules = (
        TriggerRule("always", "critical", lambda ctx: True, explode),
        *IMMEDIATE_TRIGGERS,
    )

    fired = triggers.check_immediate_triggers(_ctx([_attempt("incorrect", seconds=1.0)]))

    assert fired == ["always", "rapid_guessing"]
    assert len(store.list_notes("kid-1")) == 1


def test_session_without_progress_triggers_reanalysis(tmp_path):
    triggers, store = _triggers(tmp_path)
    calls = []
    original = triggers.brain.analyze_student
    triggers.brain.analyze_student = lambda user_id: calls.append(user_id) or original(user_id)

    fired = triggers.check_session_triggers(_session_ctx(delta=0, questions=6, old=40, new=40))

    assert fired == ["no_progress_in_session"]
    assert calls == ["kid-1"]
    note = store.list_notes("kid-1")[0]
    assert "NO mastery gain (6 questions)" in note.text
    assert note.idempotency_key == "no_progress_in_session:sess-1"


def test_mastery_celebration_note(tmp_path):
    triggers, store = _triggers(tmp_path)

    fired = triggers.check_session_triggers(_session_ctx(delta=4, questions=3, old=68, new=72))

    assert fired == ["mastery_threshold_reached"]
    note = store.list_notes("kid-1")[0]
    assert note.note_type == "celebration"
    assert "Comparing Fractions is now at 72%" in note.text


# ========== WEEKLY ==========


def _stuck_skill(store, skill_id):
    store.save_skill(
        SkillRecord(id=skill_id, user_id="kid-1", domain=skill_id, mastery=20, total_attempts=30)
    )
    for minutes in range(5):
        store.record_attempt(
            QuestionAttempt(
                skill_id=skill_id,
                correctness="incorrect",
                reasoning_quality=1.0,
                timestamp=NOW - timedelta(minutes=minutes + 1),
            )
        )


def test_weekly_note_is_high_priority_when_many_skills_struggle(tmp_path):
    triggers, store = _triggers(tmp_path)
    for skill_id in ("fractions", "decimals", "ratios"):
        _stuck_skill(store, skill_id)

    report = triggers.run_weekly_analysis("kid-1")

    assert report.struggling_count == 3
    weekly = [n for n in store.list_notes("kid-1") if n.note_type == "insight"]
    assert len(weekly) == 1
    assert weekly[0].priority == "high"
    assert weekly[0].actionable is True
    assert weekly[0].text.startswith("Weekly Analysis: 3 skills need attention, 0 improving.")
    assert weekly[0].idempotency_key == "weekly_analysis:kid-1:2026-W11"


def test_weekly_note_is_medium_priority_otherwise(tmp_path):
    triggers, store = _triggers(tmp_path)
    _stuck_skill(store, "fractions")

    report = triggers.run_weekly_analysis("kid-1")

    assert report.struggling_count == 1
    weekly = [n for n in store.list_notes("kid-1") if n.note_type == "insight"]
    assert weekly[0].priority == "medium"
    assert weekly[0].actionable is False
    assert "urgent concept_reteach (fractions)" in weekly[0].text
