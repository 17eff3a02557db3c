from typing import Callable, List, Optional, Tuple

import pytest

from skinquiz.config import Settings, settings
from skinquiz.core.engine import ArchetypeEngine
from skinquiz.core.models import Answer, Demographics, Question, RouterResult
from skinquiz.core.question_bank import QuestionBank, load_archetypes, load_question_bank

MAX_QUESTIONS = 24


def pytest_generate_tests(metafunc):
    """Run any test taking `archetype_id` once per archetype in the catalog"""
    if "archetype_id" in metafunc.fixturenames:
        archetypes, _ = load_archetypes(settings.ARCHETYPES_FILE)
        metafunc.parametrize("archetype_id", [a.id for a in archetypes])


@pytest.fixture(scope="session")
def bank() -> QuestionBank:
    return load_question_bank(settings.ARCHETYPES_FILE, settings.QUESTIONS_FILE)


@pytest.fixture
def engine(bank) -> ArchetypeEngine:
    return ArchetypeEngine(bank, Settings())


@pytest.fixture
def exhaustive_engine(bank) -> ArchetypeEngine:
    """Never stops early, so every reachable question gets asked"""
    return ArchetypeEngine(bank, Settings(HIGH_CONFIDENCE_THRESHOLD=101.0))


@pytest.fixture
def favored_option() -> Callable[[Question, str], str]:
    """Option id with the largest delta for an archetype; first option wins ties"""
    def pick(question: Question, archetype_id: str) -> str:
        best = max(question.options, key=lambda o: o.deltas.get(archetype_id, 0.0))
        return best.id
    return pick


@pytest.fixture
def walk() -> Callable:
    """Drive the router to completion, answering with `policy(question) -> option_id`"""
    def run(engine: ArchetypeEngine, policy: Callable[[Question], str],
            demographics: Optional[Demographics] = None) -> Tuple[List[Answer], List[RouterResult]]:
        answers: List[Answer] = []
        results = [engine.advance(answers, demographics)]
        while not results[-1].done:
            question = results[-1].question
            answers.append(Answer(question_id=question.id, option_id=policy(question)))
            assert len(answers) <= MAX_QUESTIONS
            results.append(engine.advance(answers, demographics))
        return answers, results
    return run


def answers_of(*pairs: Tuple[str, str]) -> List[Answer]:
    return [Answer(question_id=q, option_id=o) for q, o in pairs]


@pytest.fixture
def make_answers():
    return answers_of
