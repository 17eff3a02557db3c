import logging
from typing import List, Optional, Sequence, Tuple

from .models import (
    Answer, AnswerInsight, ClassificationResult, ConfidenceSnapshot, Demographics,
    DifferentialEntry, Option, Question
)
from .question_bank import QuestionBank
from .confidence import ConfidenceCalculator
from ..config import settings

logger = logging.getLogger(__name__)


class RuleBasedClassifier:
    """
    Final classification over a complete (or force-finished) answer set.

    The primary archetype, distribution and tier come straight from the
    confidence calculator. On top of that the classifier explains the result
    with the answers that favoured the primary, and lists the next two
    archetypes together with the answers that pulled the result away from them.
    """

    def __init__(self, bank: QuestionBank, calculator: ConfidenceCalculator,
                 explanation_limit: Optional[int] = None,
                 evidence_limit: Optional[int] = None):
        self.bank = bank
        self.calculator = calculator
        self.explanation_limit = settings.EXPLANATION_LIMIT if explanation_limit is None else explanation_limit
        self.evidence_limit = settings.DIFFERENTIAL_EVIDENCE_LIMIT if evidence_limit is None else evidence_limit

    def classify(self, answers: Sequence[Answer],
                 demographics: Optional[Demographics] = None) -> ClassificationResult:
        """
        Classify an answer set

        Raises:
            InvalidAnswerError: if any answer is malformed
        """
        resolved = self.bank.resolve(answers)
        snapshot = self.calculator.score_resolved(resolved, demographics)
        ranking = self.calculator.ranking(snapshot)

        primary = self.bank.archetype(ranking[0])
        runner_up = ranking[1] if len(ranking) > 1 else None

        flag_ids = sorted({option.medical_flag for _, option in resolved if option.medical_flag})
        flag_details = [self.bank.medical_flag(flag_id) for flag_id in flag_ids]

        explanation = self._explain(resolved, primary.id, runner_up)
        differential = [
            self._differential_entry(resolved, snapshot, primary.id, alternative)
            for alternative in ranking[1:3]
        ]

        result = ClassificationResult(
            primary_archetype=primary.id,
            archetype_name=primary.name,
            confidence=snapshot.confidence,
            confidence_tier=snapshot.tier,
            distribution=snapshot.distribution,
            medical_flags=flag_ids,
            medical_flag_details=[flag for flag in flag_details if flag is not None],
            questions_asked=len(resolved),
            explanation=explanation,
            differential=differential,
            reasoning=self._reasoning(primary.name, snapshot, len(resolved), flag_ids),
        )

        logger.debug(
            f"Classified {len(resolved)} answers as {primary.id} "
            f"({snapshot.confidence:.1f}, {snapshot.tier.value})"
        )
        return result

    def _insight(self, question: Question, option: Option, target: str,
                 other: Optional[str]) -> AnswerInsight:
        delta = option.deltas.get(target, 0.0)
        margin = delta - option.deltas.get(other, 0.0) if other else delta
        return AnswerInsight(
            question_id=question.id,
            option_id=option.id,
            question_text=question.text,
            option_label=option.label,
            delta=delta,
            margin=margin,
        )

    def _explain(self, resolved: List[Tuple[Question, Option]], primary: str,
                 runner_up: Optional[str]) -> List[AnswerInsight]:
        supporting = [
            (index, self._insight(question, option, primary, runner_up))
            for index, (question, option) in enumerate(resolved)
            if option.deltas.get(primary, 0.0) > 0
        ]
        supporting.sort(key=lambda item: (-item[1].margin, -item[1].delta, item[0]))
        return [insight for _, insight in supporting[:self.explanation_limit]]

    def _differential_entry(self, resolved: List[Tuple[Question, Option]],
                            snapshot: ConfidenceSnapshot, primary: str,
                            alternative: str) -> DifferentialEntry:
        evidence = []
        for index, (question, option) in enumerate(resolved):
            insight = self._insight(question, option, primary, alternative)
            if insight.margin > 0:
                evidence.append((index, insight))
        evidence.sort(key=lambda item: (-item[1].margin, item[0]))

        return DifferentialEntry(
            archetype_id=alternative,
            name=self.bank.archetype(alternative).name,
            probability=snapshot.distribution[alternative],
            pulled_away_by=[insight for _, insight in evidence[:self.evidence_limit]],
        )

    @staticmethod
    def _reasoning(name: str, snapshot: ConfidenceSnapshot, asked: int,
                   flag_ids: List[str]) -> str:
        if asked == 0:
            reasoning = "No answers yet; every archetype is equally likely"
        else:
            reasoning = (
                f"{name} leads with {snapshot.distribution[snapshot.leader]:.0%} "
                f"after {asked} answers ({snapshot.tier.value} confidence)"
            )
        if flag_ids:
            reasoning += f"; {len(flag_ids)} medical flag(s) raised"
        return reasoning
