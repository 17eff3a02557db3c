from typing import Dict, List, Optional, Any
from enum import Enum
from pydantic import BaseModel, Field


class Phase(str, Enum):
    """Questioning phases, in the order the router walks them"""
    OIL = "oil"
    SENSITIVITY = "sensitivity"
    DIFFERENTIATORS = "differentiators"
    DEMOGRAPHICS = "demographics"
    DONE = "done"


# Phases that hold questions; DONE is terminal
QUESTION_PHASES = [Phase.OIL, Phase.SENSITIVITY, Phase.DIFFERENTIATORS, Phase.DEMOGRAPHICS]

DEMOGRAPHIC_FIELDS = ["age_bracket", "sex", "climate"]


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Archetype(BaseModel):
    """Skin archetype with the profile its question deltas are written against"""
    id: str
    name: str
    emoji: str
    description: str
    scoring_profile: Dict[str, str]

    class Config:
        frozen = True

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "description": self.description,
        }


class MedicalFlag(BaseModel):
    """Advisory referral marker, independent of the archetype assignment"""
    id: str
    label: str
    advice: str

    class Config:
        frozen = True


class Option(BaseModel):
    id: str
    label: str
    deltas: Dict[str, float] = Field(default_factory=dict, description="Per-archetype score deltas")
    medical_flag: Optional[str] = None

    class Config:
        frozen = True


class SkipRule(BaseModel):
    """Skip the owning question when a prior answer chose one of option_ids"""
    question_id: str
    option_ids: List[str]

    class Config:
        frozen = True

    def matches(self, chosen: Dict[str, str]) -> bool:
        return chosen.get(self.question_id) in self.option_ids


class Question(BaseModel):
    """Multiple-choice consultation question"""
    id: str
    phase: Phase
    text: str
    options: List[Option]
    skip_if: List[SkipRule] = Field(default_factory=list)
    demographic_field: Optional[str] = None

    class Config:
        frozen = True

    def option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def is_skipped(self, chosen: Dict[str, str]) -> bool:
        """chosen maps question id -> option id for the answers so far"""
        return any(rule.matches(chosen) for rule in self.skip_if)


class Answer(BaseModel):
    """A submitted (question, option) pair; immutable once recorded"""
    question_id: str
    option_id: str

    class Config:
        frozen = True


class Demographics(BaseModel):
    """Caller-supplied demographic record; demographic answers override it"""
    age_bracket: Optional[str] = None
    sex: Optional[str] = None
    climate: Optional[str] = None

    class Config:
        frozen = True

    def merged_with(self, overrides: Dict[str, str]) -> "Demographics":
        values = self.model_dump()
        values.update(overrides)
        return Demographics(**values)

    def present_fields(self) -> Dict[str, str]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class ConfidenceSnapshot(BaseModel):
    """Scored state of a partial answer set"""
    distribution: Dict[str, float]
    raw_scores: Dict[str, float]
    confidence: float = Field(..., ge=0.0, le=100.0)
    tier: ConfidenceTier
    leader: str
    runner_up: Optional[str] = None
    top_archetypes: List[str] = Field(default_factory=list)


class RouterResult(BaseModel):
    done: bool
    question: Optional[Question] = None
    confidence: ConfidenceSnapshot
    phase: Phase
    estimated_remaining: int = 0
    questions_asked: int = 0


class AnswerInsight(BaseModel):
    """One answer's pull towards an archetype, used in explanations"""
    question_id: str
    option_id: str
    question_text: str
    option_label: str
    delta: float
    margin: float


class DifferentialEntry(BaseModel):
    archetype_id: str
    name: str
    probability: float
    pulled_away_by: List[AnswerInsight] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Terminal classification output"""
    primary_archetype: str
    archetype_name: str
    confidence: float
    confidence_tier: ConfidenceTier
    distribution: Dict[str, float]
    medical_flags: List[str] = Field(default_factory=list)
    medical_flag_details: List[MedicalFlag] = Field(default_factory=list)
    questions_asked: int
    explanation: List[AnswerInsight] = Field(default_factory=list)
    differential: List[DifferentialEntry] = Field(default_factory=list)
    reasoning: str


# API Request Models
class ConsultationRequest(BaseModel):
    """Stateless advance/classify request carrying the whole answer history"""
    answers: List[Answer] = Field(default_factory=list)
    demographics: Optional[Demographics] = None


class StartSessionRequest(BaseModel):
    demographics: Optional[Demographics] = None


class SubmitAnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    option_id: str = Field(..., min_length=1)
