import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import Answer, ConfidenceSnapshot, Demographics, Option, Question
from .question_bank import QuestionBank
from .utils import normalize_scores, rank_indices, get_confidence_tier, to_archetype_dict
from ..config import settings

logger = logging.getLogger(__name__)


def effective_demographics(resolved: Sequence[Tuple[Question, Option]],
                           demographics: Optional[Demographics] = None) -> Demographics:
    """Overlay demographic-phase answers on the caller-supplied record"""
    overrides = {
        question.demographic_field: option.id
        for question, option in resolved
        if question.demographic_field
    }
    return (demographics or Demographics()).merged_with(overrides)


class ConfidenceCalculator:
    """
    Scores a partial answer set into a per-archetype distribution.

    Deltas are summed per archetype, demographic multipliers are applied once
    per known field, negatives are clipped and the result normalized.
    Confidence is the gap between the two most likely archetypes.
    """

    def __init__(self, bank: QuestionBank, high_threshold: Optional[float] = None,
                 medium_threshold: Optional[float] = None):
        self.bank = bank
        self.high_threshold = settings.HIGH_CONFIDENCE_THRESHOLD if high_threshold is None else high_threshold
        self.medium_threshold = settings.MEDIUM_CONFIDENCE_THRESHOLD if medium_threshold is None else medium_threshold

    def raw_scores(self, resolved: Sequence[Tuple[Question, Option]],
                   demographics: Optional[Demographics] = None) -> np.ndarray:
        raw = np.zeros(len(self.bank.archetype_ids))
        for question, option in resolved:
            raw += self.bank.delta_vector(question.id, option.id)

        for field, value in effective_demographics(resolved, demographics).present_fields().items():
            raw *= self.bank.modifiers_for(field, value)

        return raw

    def score(self, answers: Sequence[Answer],
              demographics: Optional[Demographics] = None) -> ConfidenceSnapshot:
        """
        Score answers (in any order) for the given demographics

        Raises:
            InvalidAnswerError: if any answer is malformed
        """
        resolved = self.bank.resolve(answers)
        return self.score_resolved(resolved, demographics)

    def score_resolved(self, resolved: Sequence[Tuple[Question, Option]],
                       demographics: Optional[Demographics] = None) -> ConfidenceSnapshot:
        raw = self.raw_scores(resolved, demographics)
        probabilities = normalize_scores(raw)
        ranking = rank_indices(probabilities)

        ids = self.bank.archetype_ids
        gap = float(probabilities[ranking[0]] - probabilities[ranking[1]]) if len(ranking) > 1 else 1.0
        confidence = min(max(gap * 100.0, 0.0), 100.0)

        return ConfidenceSnapshot(
            distribution=to_archetype_dict(probabilities, ids),
            raw_scores=to_archetype_dict(raw, ids),
            confidence=confidence,
            tier=get_confidence_tier(confidence, self.high_threshold, self.medium_threshold),
            leader=ids[ranking[0]],
            runner_up=ids[ranking[1]] if len(ranking) > 1 else None,
            top_archetypes=[ids[i] for i in ranking[:3]],
        )

    def ranking(self, snapshot: ConfidenceSnapshot) -> List[str]:
        """Archetype ids from most to least likely; ties keep definition order"""
        ids = self.bank.archetype_ids
        return [ids[i] for i in rank_indices([snapshot.distribution[a] for a in ids])]
