"""Turn skill states and velocity into a ranked list of interventions."""

from __future__ import annotations

from typing import Iterable, Sequence

from learning_brain.models import Intervention, LearningVelocity, SkillState

PRIORITY_RANK = {"urgent": 4, "high": 3, "medium": 2, "low": 1}


def skill_interventions(skill: SkillState) -> list[Intervention]:
    interventions = []

    if skill.trend == "stuck" and len(skill.struggling_indicators) >= 3:
        interventions.append(
            Intervention(
                type="concept_reteach",
                priority="urgent",
                skill_id=skill.id,
                reason=(
                    f"Student stuck on {skill.domain}. "
                    f"Indicators: {', '.join(skill.struggling_indicators)}"
                ),
                suggested_action="Generate remedial lesson with different teaching approach",
                estimated_impact=85,
            )
        )
        interventions.append(
            Intervention(
                type="prerequisite_check",
                priority="high",
                skill_id=skill.id,
                reason="May be missing foundational concepts",
                suggested_action="Test prerequisite skills before continuing",
                estimated_impact=70,
            )
        )

    if skill.trend == "declining" and skill.mastery < 50:
        interventions.append(
            Intervention(
                type="remedial_quiz",
                priority="high",
                skill_id=skill.id,
                reason=f"Mastery declining ({skill.mastery:g}). Needs targeted practice",
                suggested_action="Generate adaptive quiz focusing on weak areas",
                estimated_impact=75,
            )
        )

    if "frequent_guessing" in skill.struggling_indicators:
        interventions.append(
            Intervention(
                type="difficulty_adjustment",
                priority="medium",
                skill_id=skill.id,
                reason="Student guessing frequently - questions may be too hard",
                suggested_action="Reduce difficulty temporarily, focus on building confidence",
                estimated_impact=60,
            )
        )

    return interventions


def burnout_intervention() -> Intervention:
    return Intervention(
        type="break_recommended",
        priority="high",
        skill_id="",
        reason="Attention declining, velocity dropping. Risk of burnout",
        suggested_action="Recommend 1-2 day break, then return with easier content",
        estimated_impact=90,
    )


def rank_interventions(interventions: Iterable[Intervention]) -> list[Intervention]:
    """Sort by priority rank, then estimated impact, both descending.

    The sort is stable, so a prefix of the result is always the N most
    important actions.
    """
    return sorted(
        interventions,
        key=lambda i: (PRIORITY_RANK[i.priority], i.estimated_impact),
        reverse=True,
    )


def determine_interventions(
    skills: Sequence[SkillState], velocity: LearningVelocity
) -> list[Intervention]:
    interventions: list[Intervention] = []
    for skill in skills:
        interventions.extend(skill_interventions(skill))
    if velocity.predicted_burnout:
        interventions.append(burnout_intervention())
    return rank_interventions(interventions)
