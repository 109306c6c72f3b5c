"""Pydantic models for type safety."""

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Correctness = Literal["correct", "partial", "incorrect"]
ConfidenceLevel = Literal["low", "medium", "high"]
AnswerStyle = Literal["normal", "guess", "rushed", "skip", "worked"]
AttentionQuality = Literal["stable", "declining", "unknown"]
SkillTrend = Literal["improving", "declining", "stable", "stuck"]
VelocityTrend = Literal["accelerating", "decelerating", "stable"]
Impact = Literal["positive", "negative", "neutral"]
InterventionType = Literal[
    "remedial_quiz",
    "concept_reteach",
    "prerequisite_check",
    "break_recommended",
    "difficulty_adjustment",
]
Priority = Literal["urgent", "high", "medium", "low"]
NoteType = Literal["pattern", "insight", "intervention", "celebration"]
NotePriority = Literal["low", "medium", "high"]
TriggerPriority = Literal["critical", "high", "medium"]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without a timezone are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ========== SOURCE EVENTS (read-only) ==========


class QuestionAttempt(BaseModel):
    """One answer event. Numeric fields are None when the event did not carry them."""
    model_config = ConfigDict(frozen=True)

    skill_id: str
    correctness: Correctness
    confidence_level: Optional[ConfidenceLevel] = None
    reasoning_quality: Optional[float] = Field(default=None, ge=0, le=5)
    time_to_answer_seconds: Optional[float] = Field(default=None, ge=0)
    answer_style: AnswerStyle = "normal"
    timestamp: datetime
    id: Optional[str] = None
    session_id: Optional[str] = None
    misunderstanding_label: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Session(BaseModel):
    """Aggregate of the attempts within one practice session."""
    model_config = ConfigDict(frozen=True)

    id: str
    skill_id: Optional[str] = None
    mastery_delta: float = 0.0
    questions_attempted: int = 0
    questions_correct: int = 0
    average_reasoning_quality: Optional[float] = None
    attention_quality: AttentionQuality = "unknown"
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class SkillRecord(BaseModel):
    """Skill row as kept by the store."""
    id: str
    user_id: str = ""
    domain: str
    category: str = ""
    display_name: str = ""
    mastery: float = Field(default=0.0, ge=0, le=100)
    total_attempts: int = 0
    last_seen: Optional[datetime] = None

    @field_validator("last_seen")
    @classmethod
    def last_seen_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def name(self) -> str:
        return self.display_name or self.domain


# ========== DERIVED STATE (rebuilt on every analysis) ==========


class SkillState(BaseModel):
    id: str
    domain: str
    mastery: float
    trend: SkillTrend = "stable"
    velocity: float = 0.0  # mastery points per week (approximation)
    last_practiced: Optional[datetime] = None
    struggling_indicators: List[str] = []


class BehavioralPattern(BaseModel):
    pattern: str
    confidence: float = Field(ge=0, le=100)
    first_seen: datetime
    occurrences: int
    impact: Impact = "neutral"


class LearningVelocity(BaseModel):
    overall: float = 0.0  # mastery points per week across all skills
    by_category: dict[str, float] = {}
    trend: VelocityTrend = "stable"
    predicted_burnout: bool = False


class Intervention(BaseModel):
    """A ranked decision. Independent of whether content is ever generated for it."""
    model_config = ConfigDict(frozen=True)

    type: InterventionType
    priority: Priority
    skill_id: str = ""  # empty = applies to all skills
    reason: str
    suggested_action: str
    estimated_impact: int = Field(ge=0, le=100)


class StudentState(BaseModel):
    """Full analysis result for one student."""
    user_id: str
    current_skills: List[SkillState] = []
    recent_sessions: List[Session] = []
    behavioral_patterns: List[BehavioralPattern] = []
    learning_velocity: LearningVelocity = LearningVelocity()
    interventions_needed: List[Intervention] = []  # priority-sorted


class WeeklyReport(BaseModel):
    user_id: str
    skills_analyzed: int
    struggling_count: int
    improving_count: int
    velocity: LearningVelocity
    patterns: List[BehavioralPattern]
    interventions: List[Intervention]


# ========== STORE WRITES ==========


class Note(BaseModel):
    """Append-only, human-readable record written back to the store."""
    user_id: str
    text: str
    related_skill_id: Optional[str] = None
    related_session_id: Optional[str] = None
    note_type: NoteType
    priority: NotePriority = "medium"
    actionable: bool = False
    idempotency_key: Optional[str] = None


# ========== TRIGGER CONTEXTS ==========


class AttemptContext(BaseModel):
    """Everything the reflex rules see after a single attempt."""
    user_id: str
    skill_id: str
    session_id: str
    recent_attempts: List[QuestionAttempt] = Field(min_length=1)  # newest first, current at [0]
    average_time_seconds: Optional[float] = None
    attempt_index: int = 0

    @property
    def attempt(self) -> QuestionAttempt:
        return self.recent_attempts[0]


class SessionContext(BaseModel):
    """Everything the session rules see when a session closes."""
    user_id: str
    session: Session
    session_attempts: List[QuestionAttempt] = []  # chronological
    skill_name: str = ""
    old_mastery: Optional[float] = None
    new_mastery: Optional[float] = None

    @property
    def skill_id(self) -> Optional[str]:
        return self.session.skill_id

    @property
    def session_id(self) -> str:
        return self.session.id


# ========== GENERATED CONTENT ==========


class Parsed(BaseModel):
    kind: Literal["parsed"] = "parsed"
    content: Any


class ParseFailed(BaseModel):
    kind: Literal["parse_failed"] = "parse_failed"
    raw_text: str


ParseResult = Union[Parsed, ParseFailed]


class QuizQuestion(BaseModel):
    model_config = ConfigDict(extra="allow")

    question: str
    hint: Optional[str] = None
    encouragement: Optional[str] = None


class ReteachLesson(BaseModel):
    model_config = ConfigDict(extra="allow")

    new_explanation: str
    example: str
    guided_practice: str


class PrerequisiteCheck(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    questions: List[QuizQuestion] = []


class GeneratedContent(BaseModel):
    """Student-facing content realized from an Intervention."""
    type: InterventionType
    skill_id: str
    skill_name: str = ""
    difficulty: Optional[str] = None
    special_instructions: Optional[str] = None
    questions: List[QuizQuestion] = []
    lesson: Optional[ReteachLesson] = None
    message: Optional[str] = None
