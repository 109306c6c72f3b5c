"""Tests for intervention prioritization."""

from learning_brain.interventions import determine_interventions, rank_interventions
from learning_brain.models import Intervention, LearningVelocity, SkillState


def _intervention(priority, impact, type_="remedial_quiz"):
    return Intervention(
        type=type_,
        priority=priority,
        skill_id="s1",
        reason="test",
        suggested_action="test",
        estimated_impact=impact,
    )


def test_rank_orders_by_priority_then_impact():
    ranked = rank_interventions(
        [_intervention("high", 70), _intervention("urgent", 85), _intervention("high", 90)]
    )

    assert [(i.priority, i.estimated_impact) for i in ranked] == [
        ("urgent", 85),
        ("high", 90),
        ("high", 70),
    ]


def test_rank_keeps_input_order_for_exact_ties():
    first = _intervention("medium", 60, "difficulty_adjustment")
    second = _intervention("medium", 60, "remedial_quiz")

    assert rank_interventions([first, second]) == [first, second]


def test_declining_low_mastery_skill_gets_remedial_quiz():
    skill = SkillState(id="s1", domain="fractions", mastery=40, trend="declining")

    interventions = determine_interventions([skill], LearningVelocity())

    assert [(i.type, i.priority, i.estimated_impact) for i in interventions] == [
        ("remedial_quiz", "high", 75)
    ]
    assert interventions[0].reason == "Mastery declining (40). Needs targeted practice"


def test_declining_skill_above_half_mastery_needs_nothing():
    skill = SkillState(id="s1", domain="fractions", mastery=55, trend="declining")

    assert determine_interventions([skill], LearningVelocity()) == []


def test_guessing_and_burnout_are_combined_and_ranked():
    guessing = SkillState(
        id="s2",
        domain="decimals",
        mastery=60,
        trend="stable",
        struggling_indicators=["frequent_guessing"],
    )
    stuck = SkillState(
        id="s3",
        domain="fractions",
        mastery=20,
        trend="stuck",
        struggling_indicators=["low_success_rate", "weak_reasoning", "frequent_guessing"],
    )
    velocity = LearningVelocity(trend="decelerating", predicted_burnout=True)

    interventions = determine_interventions([guessing, stuck], velocity)

    assert [(i.type, i.skill_id) for i in interventions] == [
        ("concept_reteach", "s3"),
        ("break_recommended", ""),
        ("prerequisite_check", "s3"),
        ("difficulty_adjustment", "s2"),
        ("difficulty_adjustment", "s3"),
    ]
    assert interventions[0].reason == (
        "Student stuck on fractions. Indicators: low_success_rate, weak_reasoning, frequent_guessing"
    )
