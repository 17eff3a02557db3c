import pytest

from skinquiz.core.exceptions import InvalidAnswerError
from skinquiz.core.models import ConfidenceTier

CACTUS_ANSWERS = [
    ("oil_midday", "shiny_all_over"),
    ("oil_breakouts", "weekly"),
    ("sens_products", "rarely_reacts"),
]


def test_empty_answers(engine):
    result = engine.classify([])

    assert result.primary_archetype == "ocean_pearl"
    assert result.confidence_tier == ConfidenceTier.LOW
    assert result.confidence == 0.0
    assert result.medical_flags == []
    assert result.explanation == []
    assert result.questions_asked == 0
    assert all(p == pytest.approx(1 / 12) for p in result.distribution.values())


def test_classification_is_idempotent(engine, make_answers):
    answers = make_answers(
        ("oil_midday", "shiny_tzone"),
        ("oil_breakouts", "monthly"),
        ("diff_hormonal", "yes_cyclical"),
        ("sens_itch", "often"),
    )
    assert engine.classify(answers).model_dump_json() == engine.classify(answers).model_dump_json()


def test_primary_and_differential(engine, make_answers):
    result = engine.classify(make_answers(*CACTUS_ANSWERS))

    assert result.primary_archetype == "desert_cactus"
    assert result.distribution["desert_cactus"] > result.distribution["coral_reef"]
    # Everything after the runner-up is at zero, so definition order decides
    assert [entry.archetype_id for entry in result.differential] == ["coral_reef", "ocean_pearl"]

    coral, pearl = result.differential
    # Both oily answers favour coral_reef just as much; only the calm skin separates them
    assert [(e.question_id, e.margin) for e in coral.pulled_away_by] == [("sens_products", 6.0)]
    assert [e.question_id for e in pearl.pulled_away_by] == ["oil_midday", "oil_breakouts"]


def test_explanation_orders_by_margin_over_runner_up(engine, make_answers):
    result = engine.classify(make_answers(*CACTUS_ANSWERS))

    assert [(e.question_id, e.option_id) for e in result.explanation] == [
        ("sens_products", "rarely_reacts"),
        ("oil_midday", "shiny_all_over"),
        ("oil_breakouts", "weekly"),
    ]
    assert all(e.delta > 0 for e in result.explanation)
    assert result.explanation[0].option_label


def test_explanation_is_limited(engine, walk, favored_option):
    answers, _ = walk(engine, lambda q: favored_option(q, "volcano_ember"))
    result = engine.classify(answers)

    assert len(result.explanation) == 5
    assert all(len(entry.pulled_away_by) <= 3 for entry in result.differential)


def test_flag_does_not_change_archetype(engine, make_answers):
    base = make_answers(*CACTUS_ANSWERS)
    flagged = base + make_answers(("diff_breakout_type", "small_uniform_itchy"))

    before = engine.classify(base)
    after = engine.classify(flagged)

    assert after.primary_archetype == before.primary_archetype == "desert_cactus"
    assert after.distribution == pytest.approx(before.distribution)
    assert before.medical_flags == []
    assert after.medical_flags == ["fungal_acne"]


def test_flag_triggering_answer_raises_exactly_that_flag(engine, make_answers):
    result = engine.classify(make_answers(("sens_itch", "often")))

    assert result.medical_flags == ["possible_eczema"]
    assert [flag.id for flag in result.medical_flag_details] == ["possible_eczema"]
    assert result.medical_flag_details[0].advice


def test_flags_are_sorted_and_unique(engine, make_answers):
    result = engine.classify(make_answers(
        ("diff_mole_changes", "yes"),
        ("sens_itch", "often"),
        ("diff_breakout_type", "deep_painful_cysts"),
    ))

    assert result.medical_flags == ["changing_mole", "possible_eczema", "severe_cystic_acne"]
    assert "3 medical flag" in result.reasoning


def test_high_confidence_scenario(engine, walk, favored_option, archetype_id):
    answers, results = walk(engine, lambda q: favored_option(q, archetype_id))
    result = engine.classify(answers)

    assert results[-1].done
    assert len(answers) < 24
    assert result.primary_archetype == archetype_id
    assert result.confidence_tier == ConfidenceTier.HIGH
    assert result.confidence == pytest.approx(results[-1].confidence.confidence)
    assert result.questions_asked == len(answers)


def test_invalid_answers_are_rejected(engine, make_answers):
    with pytest.raises(InvalidAnswerError) as exc_info:
        engine.classify(make_answers(("oil_midday", "shiny_all_over"), ("oil_midday", "shiny_tzone")))
    assert exc_info.value.index == 1
