import json
import os
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import (
    Archetype, Answer, MedicalFlag, Option, Phase, Question,
    QUESTION_PHASES, DEMOGRAPHIC_FIELDS
)
from .exceptions import (
    InvalidAnswerError, DataIntegrityError, QuestionNotFound, ArchetypeNotFound
)

logger = logging.getLogger(__name__)

EXPECTED_ARCHETYPES = 12
EXPECTED_QUESTIONS = 24


class QuestionBank:
    """
    Read-only catalog of archetypes, questions, medical flags and demographic
    modifiers. Built once at startup and shared by every session.
    """

    def __init__(self, archetypes: List[Archetype], questions: List[Question],
                 medical_flags: Dict[str, MedicalFlag],
                 demographic_modifiers: Dict[str, Dict[str, Dict[str, float]]]):
        self.archetypes = list(archetypes)
        self.archetype_ids = [a.id for a in self.archetypes]
        self.questions = list(questions)
        self.medical_flags = dict(medical_flags)
        self.demographic_modifiers = demographic_modifiers

        self._archetypes_by_id = {a.id: a for a in self.archetypes}
        self._questions_by_id = {q.id: q for q in self.questions}
        self._index = {archetype_id: i for i, archetype_id in enumerate(self.archetype_ids)}

        # Delta vectors in archetype order, keyed by (question_id, option_id)
        self._delta_vectors: Dict[Tuple[str, str], np.ndarray] = {}
        for question in self.questions:
            for option in question.options:
                self._delta_vectors[(question.id, option.id)] = self._vectorize(option.deltas)

    def _vectorize(self, values: Dict[str, float], default: float = 0.0) -> np.ndarray:
        vector = np.full(len(self.archetype_ids), default, dtype=float)
        for archetype_id, value in values.items():
            if archetype_id in self._index:
                vector[self._index[archetype_id]] = value
        return vector

    def questions_in_phase(self, phase: Phase) -> List[Question]:
        return [q for q in self.questions if q.phase == phase]

    def question(self, question_id: str) -> Question:
        question = self._questions_by_id.get(question_id)
        if question is None:
            raise QuestionNotFound(question_id)
        return question

    def archetype(self, archetype_id: str) -> Archetype:
        archetype = self._archetypes_by_id.get(archetype_id)
        if archetype is None:
            raise ArchetypeNotFound(archetype_id)
        return archetype

    def medical_flag(self, flag_id: str) -> Optional[MedicalFlag]:
        return self.medical_flags.get(flag_id)

    def delta_vector(self, question_id: str, option_id: str) -> np.ndarray:
        return self._delta_vectors[(question_id, option_id)]

    def modifiers_for(self, field: str, value: str) -> np.ndarray:
        """Multipliers for one demographic value; unknown values are neutral"""
        multipliers = self.demographic_modifiers.get(field, {}).get(value, {})
        return self._vectorize(multipliers, default=1.0)

    def resolve(self, answers: Sequence[Answer]) -> List[Tuple[Question, Option]]:
        """
        Validate answers against the bank

        Raises:
            InvalidAnswerError: unknown question, unknown option or a repeated question
        """
        resolved = []
        seen = set()
        for index, answer in enumerate(answers):
            question = self._questions_by_id.get(answer.question_id)
            if question is None:
                raise InvalidAnswerError(
                    f"Unknown question '{answer.question_id}' at position {index}",
                    answer=answer, index=index
                )
            option = question.option(answer.option_id)
            if option is None:
                raise InvalidAnswerError(
                    f"Unknown option '{answer.option_id}' for question '{question.id}' at position {index}",
                    answer=answer, index=index
                )
            if question.id in seen:
                raise InvalidAnswerError(
                    f"Question '{question.id}' answered more than once (position {index})",
                    answer=answer, index=index
                )
            seen.add(question.id)
            resolved.append((question, option))
        return resolved

    def summary(self) -> Dict[str, int]:
        return {
            "archetypes": len(self.archetypes),
            "questions": len(self.questions),
            "medical_flags": len(self.medical_flags),
            **{f"{phase.value}_questions": len(self.questions_in_phase(phase)) for phase in QUESTION_PHASES},
        }


def load_archetypes(file_path: str) -> Tuple[List[Archetype], Dict[str, Dict[str, Dict[str, float]]]]:
    try:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Archetypes file not found: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        archetypes = [Archetype(**item) for item in data['archetypes']]
        modifiers = data.get('demographic_modifiers', {})

        logger.info(f"Successfully loaded {len(archetypes)} archetypes")
        return archetypes, modifiers

    except Exception as e:
        logger.error(f"Failed to load archetypes: {e}")
        raise


def load_questions(file_path: str) -> Tuple[List[Question], Dict[str, MedicalFlag]]:
    try:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Questions file not found: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        questions = [Question(**q_data) for q_data in data['questions']]
        medical_flags = {
            flag_id: MedicalFlag(id=flag_id, **flag_data)
            for flag_id, flag_data in data.get('medical_flags', {}).items()
        }

        logger.info(f"Successfully loaded {len(questions)} questions and {len(medical_flags)} medical flags")
        return questions, medical_flags

    except Exception as e:
        logger.error(f"Failed to load questions: {e}")
        raise


def validate_data_integrity(bank: QuestionBank) -> Tuple[bool, List[str]]:
    errors = []
    archetype_ids = set(bank.archetype_ids)

    if len(bank.archetypes) != EXPECTED_ARCHETYPES:
        errors.append(f"Expected {EXPECTED_ARCHETYPES} archetypes, found {len(bank.archetypes)}")
    if len(archetype_ids) != len(bank.archetypes):
        errors.append("Duplicate archetype ids")

    if len(bank.questions) != EXPECTED_QUESTIONS:
        errors.append(f"Expected {EXPECTED_QUESTIONS} questions, found {len(bank.questions)}")
    if len({q.id for q in bank.questions}) != len(bank.questions):
        errors.append("Duplicate question ids")

    for phase in QUESTION_PHASES:
        if not bank.questions_in_phase(phase):
            errors.append(f"Phase {phase.value} has no questions")

    phase_rank = {phase: i for i, phase in enumerate(QUESTION_PHASES)}
    questions_by_id = {q.id: q for q in bank.questions}

    for question in bank.questions:
        if question.phase == Phase.DONE:
            errors.append(f"Question {question.id} cannot belong to the terminal phase")
            continue

        if len(question.options) < 2:
            errors.append(f"Question {question.id} needs at least two options")
        if len({o.id for o in question.options}) != len(question.options):
            errors.append(f"Question {question.id} has duplicate option ids")

        for option in question.options:
            unknown = set(option.deltas) - archetype_ids
            if unknown:
                errors.append(f"Question {question.id} option {option.id} references unknown archetypes: {sorted(unknown)}")
            if option.medical_flag and option.medical_flag not in bank.medical_flags:
                errors.append(f"Question {question.id} option {option.id} raises unknown flag: {option.medical_flag}")

        for rule in question.skip_if:
            target = questions_by_id.get(rule.question_id)
            if target is None:
                errors.append(f"Question {question.id} skip rule references unknown question: {rule.question_id}")
                continue
            if target.id == question.id:
                errors.append(f"Question {question.id} skip rule references itself")
            if phase_rank[target.phase] > phase_rank[question.phase]:
                errors.append(f"Question {question.id} skip rule looks ahead to {target.phase.value} phase")
            for option_id in rule.option_ids:
                if target.option(option_id) is None:
                    errors.append(f"Question {question.id} skip rule references unknown option {rule.question_id}.{option_id}")

        if question.demographic_field:
            if question.demographic_field not in DEMOGRAPHIC_FIELDS:
                errors.append(f"Question {question.id} has invalid demographic field: {question.demographic_field}")
            else:
                known_values = bank.demographic_modifiers.get(question.demographic_field, {})
                for option in question.options:
                    if option.id not in known_values:
                        errors.append(f"Question {question.id} option {option.id} has no demographic modifier entry")

    for field, values in bank.demographic_modifiers.items():
        if field not in DEMOGRAPHIC_FIELDS:
            errors.append(f"Unknown demographic field in modifiers: {field}")
        for value, multipliers in values.items():
            unknown = set(multipliers) - archetype_ids
            if unknown:
                errors.append(f"Modifier {field}={value} references unknown archetypes: {sorted(unknown)}")
            for archetype_id, multiplier in multipliers.items():
                if multiplier < 0:
                    errors.append(f"Modifier {field}={value} has negative multiplier for {archetype_id}")

    is_valid = len(errors) == 0
    if is_valid:
        logger.info("Question bank validation passed")
    else:
        logger.warning(f"Question bank validation failed with {len(errors)} errors")

    return is_valid, errors


def load_question_bank(archetypes_file: str, questions_file: str) -> QuestionBank:
    """Load and validate the bank; raises DataIntegrityError on any problem"""
    archetypes, modifiers = load_archetypes(archetypes_file)
    questions, medical_flags = load_questions(questions_file)
    bank = QuestionBank(archetypes, questions, medical_flags, modifiers)

    is_valid, errors = validate_data_integrity(bank)
    if not is_valid:
        raise DataIntegrityError("Question bank validation failed", errors)

    logger.info(f"Question bank ready: {bank.summary()}")
    return bank
