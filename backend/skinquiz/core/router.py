import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    Answer, ConfidenceSnapshot, ConfidenceTier, Demographics, Option, Phase,
    Question, RouterResult, QUESTION_PHASES
)
from .question_bank import QuestionBank
from .confidence import ConfidenceCalculator
from .utils import calculate_entropy
from .exceptions import InvariantViolation
from ..config import settings

logger = logging.getLogger(__name__)


class DecisionTreeRouter:
    """
    Picks the next question, walking the phases oil -> sensitivity ->
    differentiators -> demographics in order and never stepping back.

    Within a phase the question with the highest expected information gain
    is asked first; ties go to bank order. The walk stops once confidence is
    high and at least MIN_QUESTIONS have been answered, or when nothing is
    left to ask.
    """

    def __init__(self, bank: QuestionBank, calculator: ConfidenceCalculator,
                 min_questions: Optional[int] = None):
        self.bank = bank
        self.calculator = calculator
        self.min_questions = settings.MIN_QUESTIONS if min_questions is None else min_questions

    @staticmethod
    def current_phase(resolved: Sequence[Tuple[Question, Option]]) -> Phase:
        """Latest phase that has an answer; oil before anything is answered"""
        if not resolved:
            return Phase.OIL
        return max((question.phase for question, _ in resolved), key=QUESTION_PHASES.index)

    def eligible_questions(self, phase: Phase, chosen: Dict[str, str]) -> List[Question]:
        return [
            q for q in self.bank.questions_in_phase(phase)
            if q.id not in chosen and not q.is_skipped(chosen)
        ]

    def estimate_remaining(self, phase: Phase, chosen: Dict[str, str]) -> int:
        start = QUESTION_PHASES.index(phase)
        return sum(len(self.eligible_questions(p, chosen)) for p in QUESTION_PHASES[start:])

    def information_gain(self, question: Question, resolved: List[Tuple[Question, Option]],
                         demographics: Optional[Demographics], current_entropy: float) -> float:
        expected_entropy = 0.0
        for option in question.options:
            simulated = self.calculator.score_resolved(resolved + [(question, option)], demographics)
            expected_entropy += calculate_entropy(list(simulated.distribution.values()))
        expected_entropy /= len(question.options)
        return max(0.0, current_entropy - expected_entropy)

    def _select_question(self, candidates: List[Question], resolved: List[Tuple[Question, Option]],
                         demographics: Optional[Demographics],
                         snapshot: ConfidenceSnapshot) -> Optional[Question]:
        current_entropy = calculate_entropy(list(snapshot.distribution.values()))

        best_question = None
        best_gain = -1.0
        for question in candidates:
            gain = self.information_gain(question, resolved, demographics, current_entropy)
            logger.debug(f"Candidate {question.id}: gain={gain:.4f}")
            # Strictly greater, so the earlier question wins a tie
            if gain > best_gain + 1e-12:
                best_question = question
                best_gain = gain

        return best_question

    def next_question(self, answers: Sequence[Answer],
                      demographics: Optional[Demographics] = None) -> RouterResult:
        """
        Decide what to ask next for the given answer history

        Raises:
            InvalidAnswerError: if an answer is unknown or repeats a question
            InvariantViolation: if questions remain but none can be selected
        """
        resolved = self.bank.resolve(answers)
        snapshot = self.calculator.score_resolved(resolved, demographics)
        chosen = {question.id: option.id for question, option in resolved}
        phase = self.current_phase(resolved)
        asked = len(resolved)

        logger.debug(
            f"Routing after {asked} answers: phase={phase.value}, "
            f"leader={snapshot.leader}, confidence={snapshot.confidence:.1f}"
        )

        if snapshot.tier == ConfidenceTier.HIGH and asked >= self.min_questions:
            logger.debug(f"Early stop: {snapshot.leader} at {snapshot.confidence:.1f} after {asked} answers")
            return self._done(snapshot, asked)

        remaining = self.estimate_remaining(phase, chosen)

        for candidate_phase in QUESTION_PHASES[QUESTION_PHASES.index(phase):]:
            candidates = self.eligible_questions(candidate_phase, chosen)
            if not candidates:
                continue

            question = self._select_question(candidates, resolved, demographics, snapshot)
            if question is not None:
                logger.debug(f"Selected {question.id} in {candidate_phase.value} phase")
                return RouterResult(
                    done=False,
                    question=question,
                    confidence=snapshot,
                    phase=candidate_phase,
                    estimated_remaining=remaining,
                    questions_asked=asked,
                )

        if remaining > 0:
            logger.error(
                f"No question selected although {remaining} remain; "
                f"answers={[(a.question_id, a.option_id) for a in answers]} "
                f"demographics={demographics.present_fields() if demographics else None}"
            )
            raise InvariantViolation(
                f"Router found no question to ask with {remaining} questions remaining"
            )

        logger.debug(f"Question bank exhausted after {asked} answers")
        return self._done(snapshot, asked)

    @staticmethod
    def _done(snapshot: ConfidenceSnapshot, asked: int) -> RouterResult:
        return RouterResult(
            done=True,
            question=None,
            confidence=snapshot,
            phase=Phase.DONE,
            estimated_remaining=0,
            questions_asked=asked,
        )
