import json

import numpy as np
import pytest

from skinquiz.config import settings
from skinquiz.core.exceptions import (
    DataIntegrityError, InvalidAnswerError, QuestionNotFound, ArchetypeNotFound
)
from skinquiz.core.models import Option, Phase, SkipRule, QUESTION_PHASES
from skinquiz.core.question_bank import QuestionBank, load_question_bank, validate_data_integrity


def _rebuild(bank, questions):
    return QuestionBank(bank.archetypes, questions, bank.medical_flags, bank.demographic_modifiers)


def test_packaged_data_loads(bank):
    assert len(bank.archetypes) == 12
    assert len(bank.questions) == 24
    assert bank.archetype_ids[0] == "ocean_pearl"
    assert bank.archetype_ids[-1] == "arctic_willow"
    for phase in QUESTION_PHASES:
        assert bank.questions_in_phase(phase)
    assert bank.questions_in_phase(Phase.DONE) == []


def test_packaged_data_is_valid(bank):
    is_valid, errors = validate_data_integrity(bank)
    assert is_valid, errors


def test_questions_in_phase_keeps_bank_order(bank):
    oil_ids = [q.id for q in bank.questions_in_phase(Phase.OIL)]
    assert oil_ids == [q.id for q in bank.questions if q.phase == Phase.OIL]
    assert oil_ids[0] == "oil_midday"


def test_lookups(bank):
    assert bank.question("sens_itch").phase == Phase.SENSITIVITY
    assert bank.archetype("volcano_ember").name
    assert bank.medical_flag("possible_eczema").label
    assert bank.medical_flag("nope") is None

    with pytest.raises(QuestionNotFound):
        bank.question("nope")
    with pytest.raises(ArchetypeNotFound):
        bank.archetype("nope")


def test_delta_vector_follows_archetype_order(bank):
    vector = bank.delta_vector("oil_midday", "greasy_within_hours")
    assert vector.shape == (12,)
    assert vector[bank.archetype_ids.index("volcano_ember")] == 4
    assert vector[bank.archetype_ids.index("desert_cactus")] == -5
    # Archetypes missing from the deltas score zero
    assert not bank.delta_vector("diff_breakout_type", "small_uniform_itchy").any()


def test_modifiers_default_to_neutral(bank):
    assert np.allclose(bank.modifiers_for("climate", "temperate"), 1.0)
    assert np.allclose(bank.modifiers_for("climate", "somewhere_else"), 1.0)
    under_18 = bank.modifiers_for("age_bracket", "under_18")
    assert under_18[bank.archetype_ids.index("volcano_ember")] == pytest.approx(1.2)


def test_resolve_rejects_unknown_question(bank, make_answers):
    with pytest.raises(InvalidAnswerError) as exc_info:
        bank.resolve(make_answers(("oil_midday", "shiny_all_over"), ("nope", "x")))
    assert exc_info.value.index == 1
    assert exc_info.value.answer.question_id == "nope"


def test_resolve_rejects_unknown_option(bank, make_answers):
    with pytest.raises(InvalidAnswerError) as exc_info:
        bank.resolve(make_answers(("oil_midday", "sparkly")))
    assert exc_info.value.index == 0
    assert exc_info.value.to_dict()["error"] == "invalid_answer"


def test_resolve_rejects_repeated_question(bank, make_answers):
    with pytest.raises(InvalidAnswerError) as exc_info:
        bank.resolve(make_answers(
            ("oil_midday", "shiny_all_over"),
            ("oil_pores", "barely_visible"),
            ("oil_midday", "matte_comfortable"),
        ))
    assert exc_info.value.index == 2


def test_validation_catches_unknown_archetype_in_deltas(bank):
    question = bank.question("oil_pores")
    broken = question.model_copy(update={
        "options": question.options + [Option(id="odd", label="Odd", deltas={"lava_lamp": 2})]
    })
    questions = [broken if q.id == question.id else q for q in bank.questions]

    is_valid, errors = validate_data_integrity(_rebuild(bank, questions))

    assert not is_valid
    assert any("lava_lamp" in e for e in errors)


def test_validation_catches_forward_looking_skip_rule(bank):
    question = bank.question("oil_pores")
    broken = question.model_copy(update={
        "skip_if": [SkipRule(question_id="demo_sex", option_ids=["male"])]
    })
    questions = [broken if q.id == question.id else q for q in bank.questions]

    is_valid, errors = validate_data_integrity(_rebuild(bank, questions))

    assert not is_valid
    assert any("looks ahead" in e for e in errors)


def test_validation_catches_uncatalogued_flag(bank):
    question = bank.question("diff_texture")
    options = [question.options[0].model_copy(update={"medical_flag": "mystery"})] + question.options[1:]
    questions = [question.model_copy(update={"options": options}) if q.id == question.id else q
                 for q in bank.questions]

    is_valid, errors = validate_data_integrity(_rebuild(bank, questions))

    assert not is_valid
    assert any("mystery" in e for e in errors)


def test_load_rejects_broken_files(tmp_path):
    with open(settings.QUESTIONS_FILE, encoding="utf-8") as f:
        data = json.load(f)
    data["questions"] = data["questions"][:-1]
    broken = tmp_path / "question_bank.json"
    broken.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(DataIntegrityError) as exc_info:
        load_question_bank(settings.ARCHETYPES_FILE, str(broken))
    assert any("24 questions" in e for e in exc_info.value.errors)


def test_load_reports_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_question_bank(str(tmp_path / "missing.json"), settings.QUESTIONS_FILE)
