import logging
from typing import Optional, Sequence

from .models import Answer, ClassificationResult, ConfidenceSnapshot, Demographics, RouterResult
from .question_bank import QuestionBank, load_question_bank
from .confidence import ConfidenceCalculator
from .router import DecisionTreeRouter
from .classifier import RuleBasedClassifier
from ..config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ArchetypeEngine:
    """Stateless entry point: callers pass the full answer history every time"""

    def __init__(self, bank: QuestionBank, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.bank = bank
        self.calculator = ConfidenceCalculator(
            bank,
            high_threshold=settings.HIGH_CONFIDENCE_THRESHOLD,
            medium_threshold=settings.MEDIUM_CONFIDENCE_THRESHOLD,
        )
        self.router = DecisionTreeRouter(bank, self.calculator, min_questions=settings.MIN_QUESTIONS)
        self.classifier = RuleBasedClassifier(
            bank, self.calculator,
            explanation_limit=settings.EXPLANATION_LIMIT,
            evidence_limit=settings.DIFFERENTIAL_EVIDENCE_LIMIT,
        )

    def advance(self, answers: Sequence[Answer],
                demographics: Optional[Demographics] = None) -> RouterResult:
        return self.router.next_question(answers, demographics)

    def classify(self, answers: Sequence[Answer],
                 demographics: Optional[Demographics] = None) -> ClassificationResult:
        return self.classifier.classify(answers, demographics)

    def score(self, answers: Sequence[Answer],
              demographics: Optional[Demographics] = None) -> ConfidenceSnapshot:
        return self.calculator.score(answers, demographics)


_engine: Optional[ArchetypeEngine] = None


def get_engine() -> ArchetypeEngine:
    """Process-wide engine, built from settings on first use"""
    global _engine
    if _engine is None:
        bank = load_question_bank(default_settings.ARCHETYPES_FILE, default_settings.QUESTIONS_FILE)
        _engine = ArchetypeEngine(bank, default_settings)
        logger.info("Archetype engine initialized")
    return _engine
