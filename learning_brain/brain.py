"""Learning brain: full per-student analysis and intervention realization.

analyze_student() always rebuilds the StudentState from raw events. Nothing
derived is cached between calls, so the same events always give the same state.
Store and generation failures are logged and degrade to "no data" / None.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from pydantic import TypeAdapter, ValidationError

from learning_brain.config import settings
from learning_brain.interventions import determine_interventions
from learning_brain.models import (
    GeneratedContent,
    Intervention,
    Note,
    ParseFailed,
    PrerequisiteCheck,
    QuizQuestion,
    ReteachLesson,
    Session,
    SkillRecord,
    SkillState,
    StudentState,
)
from learning_brain.patterns import detect_behavioral_patterns
from learning_brain.prompts import CONCEPT_RETEACH, PREREQUISITE_CHECK, REMEDIAL_QUIZ
from learning_brain.services.llm import GenerationError, LLMService, parse_structured
from learning_brain.services.store import LearningStore, StoreError
from learning_brain.trends import analyze_skill_trend
from learning_brain.velocity import calculate_learning_velocity

log = logging.getLogger(__name__)

_QUIZ_QUESTIONS = TypeAdapter(list[QuizQuestion])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _or_default(value, default):
    return default if value is None else value


class LearningBrain:
    """Analysis service with injected store, generator and clock."""

    def __init__(
        self,
        store: LearningStore,
        llm: Optional[LLMService] = None,
        clock: Callable[[], datetime] = utcnow,
        session_window_days: Optional[int] = None,
        attempt_history_limit: Optional[int] = None,
        velocity_window_days: Optional[int] = None,
        local_timezone: Optional[str] = None,
    ):
        self.store = store
        self.llm = llm
        self.clock = clock
        self.session_window_days = _or_default(session_window_days, settings.SESSION_WINDOW_DAYS)
        self.attempt_history_limit = _or_default(attempt_history_limit, settings.ATTEMPT_HISTORY_LIMIT)
        self.velocity_window_days = _or_default(velocity_window_days, settings.VELOCITY_WINDOW_DAYS)
        self.local_timezone = ZoneInfo(local_timezone or settings.LOCAL_TIMEZONE)

    # ========== ANALYSIS ==========

    def analyze_student(self, user_id: str) -> StudentState:
        """Run trends, patterns, velocity and prioritization for one student."""
        log.info(f"Analyzing student {user_id}")
        now = self.clock()

        skills = self._get_skills(user_id)
        skill_states = [self._skill_state(skill, now) for skill in skills]
        sessions = self._get_sessions(user_id, now)

        patterns = detect_behavioral_patterns(sessions, self.local_timezone)
        velocity = calculate_learning_velocity(
            sessions, now, {skill.id: skill.domain for skill in skills}
        )
        interventions = determine_interventions(skill_states, velocity)

        state = StudentState(
            user_id=user_id,
            current_skills=skill_states,
            recent_sessions=sessions,
            behavioral_patterns=patterns,
            learning_velocity=velocity,
            interventions_needed=interventions,
        )
        self._store_brain_analysis(state, now)

        log.info(
            f"Analysis for {user_id}: {len(skill_states)} skills, {len(sessions)} sessions, "
            f"{len(patterns)} patterns, {len(interventions)} interventions"
        )
        return state

    def _get_skills(self, user_id: str) -> list[SkillRecord]:
        try:
            return self.store.get_skills(user_id)
        except StoreError as e:
            log.warning(f"Could not read skills for {user_id}: {e}")
            return []

    def _skill_state(self, skill: SkillRecord, now: datetime) -> SkillState:
        try:
            attempts = self.store.get_attempts(skill.id, self.attempt_history_limit)
        except StoreError as e:
            log.warning(f"Could not read attempts for skill {skill.id}: {e}")
            attempts = []
        return analyze_skill_trend(skill, attempts, now, self.velocity_window_days)

    def _get_sessions(self, user_id: str, now: datetime) -> list[Session]:
        try:
            sessions = self.store.get_sessions(user_id, self.session_window_days, now=now)
        except StoreError as e:
            log.warning(f"Could not read sessions for {user_id}: {e}")
            return []
        return sorted(sessions, key=lambda s: s.timestamp, reverse=True)

    def _store_brain_analysis(self, state: StudentState, now: datetime) -> None:
        """Persist urgent/high interventions as notes, at most once per day each."""
        for intervention in state.interventions_needed:
            if intervention.priority not in ("urgent", "high"):
                continue
            note = Note(
                user_id=state.user_id,
                text=f"[BRAIN] {intervention.reason}. {intervention.suggested_action}",
                related_skill_id=intervention.skill_id or None,
                note_type="intervention",
                priority="high" if intervention.priority == "urgent" else intervention.priority,
                actionable=True,
                idempotency_key=(
                    f"brain:{state.user_id}:{intervention.type}:"
                    f"{intervention.skill_id or 'all'}:{now.date().isoformat()}"
                ),
            )
            try:
                self.store.insert_note(note)
            except StoreError as e:
                log.warning(f"Could not store analysis note for {state.user_id}: {e}")

    # ========== REALIZATION ==========

    def generate_intervention(
        self, intervention: Intervention, user_id: str
    ) -> Optional[GeneratedContent]:
        """Turn an intervention into content. None when there is nothing to generate
        or generation fails; the intervention itself stays valid either way."""
        log.info(f"Generating {intervention.type} for {user_id} (skill={intervention.skill_id})")
        generators = {
            "remedial_quiz": self._generate_remedial_quiz,
            "concept_reteach": self._generate_concept_reteach,
            "prerequisite_check": self._generate_prerequisite_check,
        }
        generate = generators.get(intervention.type)
        if generate is None or not intervention.skill_id:
            return None

        try:
            skill = self.store.get_skill(intervention.skill_id)
        except StoreError as e:
            log.warning(f"Could not read skill {intervention.skill_id}: {e}")
            return None
        if skill is None:
            return None

        try:
            return generate(skill)
        except ValidationError as e:
            log.warning(f"Generated {intervention.type} has unexpected shape: {e.error_count()} errors")
            return None

    def analyze_and_generate(
        self, user_id: str, limit: Optional[int] = None
    ) -> tuple[StudentState, list[tuple[Intervention, GeneratedContent]]]:
        """Analyze, then realize the urgent/high interventions among the top `limit`."""
        state = self.analyze_student(user_id)
        limit = _or_default(limit, settings.GENERATE_TOP_N)
        generated = []
        for intervention in state.interventions_needed[:limit]:
            if intervention.priority not in ("urgent", "high"):
                continue
            content = self.generate_intervention(intervention, user_id)
            if content is not None:
                generated.append((intervention, content))
        return state, generated

    def _complete_json(self, prompt: str, temperature: float, max_tokens: int):
        """Return parsed JSON from the generator, or None on any failure."""
        if self.llm is None:
            log.warning("No content generator configured")
            return None
        try:
            raw = self.llm.generate_completion(prompt, temperature=temperature, max_tokens=max_tokens)
        except GenerationError as e:
            log.warning(f"Generation failed: {e}")
            return None

        result = parse_structured(raw)
        if isinstance(result, ParseFailed):
            log.error(f"Failed to parse generated content ({len(result.raw_text)} chars)")
            return None
        return result.content

    def _generate_remedial_quiz(self, skill: SkillRecord) -> Optional[GeneratedContent]:
        try:
            mistakes = self.store.get_attempts(skill.id, 5, correctness="incorrect")
        except StoreError as e:
            log.warning(f"Could not read mistakes for skill {skill.id}: {e}")
            mistakes = []
        labels = [a.misunderstanding_label for a in mistakes if a.misunderstanding_label]

        prompt = REMEDIAL_QUIZ.format(
            skill_name=skill.name,
            mastery=skill.mastery,
            mistakes=", ".join(labels) or "Unknown",
        )
        data = self._complete_json(prompt, temperature=0.7, max_tokens=1500)
        if data is None:
            return None
        return GeneratedContent(
            type="remedial_quiz",
            skill_id=skill.id,
            skill_name=skill.name,
            difficulty="scaffolded",
            questions=_QUIZ_QUESTIONS.validate_python(data),
            special_instructions="Take your time. We are rebuilding your foundation.",
        )

    def _generate_concept_reteach(self, skill: SkillRecord) -> Optional[GeneratedContent]:
        prompt = CONCEPT_RETEACH.format(
            skill_name=skill.name,
            total_attempts=skill.total_attempts,
            mastery=skill.mastery,
        )
        data = self._complete_json(prompt, temperature=0.8, max_tokens=1200)
        if data is None:
            return None
        return GeneratedContent(
            type="concept_reteach",
            skill_id=skill.id,
            skill_name=skill.name,
            lesson=ReteachLesson.model_validate(data),
        )

    def _generate_prerequisite_check(self, skill: SkillRecord) -> Optional[GeneratedContent]:
        prompt = PREREQUISITE_CHECK.format(
            skill_name=skill.name,
            total_attempts=skill.total_attempts,
            mastery=skill.mastery,
        )
        data = self._complete_json(prompt, temperature=0.5, max_tokens=800)
        if data is None:
            return None
        check = PrerequisiteCheck.model_validate(data)
        return GeneratedContent(
            type="prerequisite_check",
            skill_id=skill.id,
            skill_name=skill.name,
            message=check.message,
            questions=check.questions,
        )
