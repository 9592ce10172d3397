"""Tests for the step type registry and response normalization."""

import pytest
from pydantic import ValidationError

from assessflow.registry import (
    REGISTRY,
    QuestionConfig,
    StepTypeDefinition,
    StepTypeRegistry,
    default_registry,
)


def test_builtin_types_registered():
    assert set(REGISTRY.names()) == {
        "INFORMATION",
        "QUESTION",
        "CONSENT",
        "CHECKOUT",
        "PROVIDER_REVIEW",
    }
    assert REGISTRY.is_terminal("PROVIDER_REVIEW")
    assert not REGISTRY.is_terminal("QUESTION")
    assert not REGISTRY.is_known("SURVEY")


def test_number_question_coerces_numeric_strings():
    config = {"question_type": "number", "text": "Age?"}
    assert REGISTRY.normalize("QUESTION", "34", config) == {"value": 34}
    assert REGISTRY.normalize("QUESTION", "abc", config) == {"value": "abc"}
    assert REGISTRY.normalize("QUESTION", 21.5, config) == {"value": 21.5}


def test_multi_select_wraps_scalar():
    config = {
        "question_type": "multi_select",
        "text": "Symptoms?",
        "options": [{"value": "low_energy"}],
    }
    assert REGISTRY.normalize("QUESTION", "low_energy", config) == {"value": ["low_energy"]}
    assert REGISTRY.normalize("QUESTION", ["low_energy"], config) == {"value": ["low_energy"]}
    assert REGISTRY.normalize("QUESTION", None, config) == {"value": []}


def test_text_question_keeps_raw_value():
    config = {"question_type": "text", "text": "Anything else?"}
    assert REGISTRY.normalize("QUESTION", "42", config) == {"value": "42"}


def test_acknowledgement_types():
    assert REGISTRY.normalize("INFORMATION", None) == {"acknowledged": True}
    assert REGISTRY.normalize("CONSENT", "yes", {"text": "I agree"}) == {"acknowledged": True}


def test_unknown_type_passes_raw_through():
    assert REGISTRY.normalize("SURVEY", {"free": "form"}) == {"free": "form"}


def test_invalid_config_is_ignored_when_normalizing():
    assert REGISTRY.normalize("QUESTION", "34", {"question_type": "slider"}) == {"value": "34"}


def test_failing_normalizer_stores_raw():
    def explode(raw, config):
        raise RuntimeError("boom")

    registry = StepTypeRegistry()
    registry.register(StepTypeDefinition(name="FRAGILE", normalizer=explode))
    assert registry.normalize("FRAGILE", {"a": 1}) == {"a": 1}


def test_parse_config_validates_shapes():
    parsed = REGISTRY.parse_config(
        "QUESTION", {"question_type": "number", "text": "Age?", "validation": {"min": 18}}
    )
    assert isinstance(parsed, QuestionConfig)
    assert parsed.validation.min == 18

    with pytest.raises(ValidationError):
        REGISTRY.parse_config("QUESTION", {"question_type": "single_select", "text": "Pick"})
    with pytest.raises(ValidationError):
        REGISTRY.parse_config("CHECKOUT", {"products": [{"id": "p", "name": "P", "price": -1}]})
    assert REGISTRY.parse_config("SURVEY", {"anything": True}) is None


def test_registered_type_becomes_known():
    registry = default_registry()
    registry.register(StepTypeDefinition(name="UPLOAD", terminal=True))
    assert registry.is_known("UPLOAD")
    assert registry.is_terminal("UPLOAD")
    assert registry.normalize("UPLOAD", b"raw") == b"raw"
    assert not REGISTRY.is_known("UPLOAD")


def test_camel_case_config_keys_are_accepted():
    config = {"questionType": "number", "text": "What is your current age?"}
    assert REGISTRY.normalize("QUESTION", "21", config) == {"value": 21}

    parsed = REGISTRY.parse_config(
        "QUESTION",
        {
            "questionType": "multi_select",
            "text": "Symptoms?",
            "options": [{"value": "low_energy", "weight": 2}],
            "validation": {"required": True, "minSelections": 1, "customMessage": "Pick one"},
        },
    )
    assert parsed.question_type == "multi_select"
    assert parsed.validation.min_selections == 1
    assert parsed.options[0].model_extra == {"weight": 2}

    checkout = REGISTRY.parse_config(
        "CHECKOUT",
        {"paymentRequired": True, "allowMultiple": False, "products": []},
    )
    assert checkout.payment_required is True
    review = REGISTRY.parse_config(
        "PROVIDER_REVIEW",
        {"autoAssign": True, "estimatedReviewTime": "24 hours", "requiredActions": ["lab_order"]},
    )
    assert review.auto_assign and review.required_actions == ["lab_order"]
