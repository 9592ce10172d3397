"""Shared constants for the assessflow engine."""

from __future__ import annotations

from enum import Enum


class StepType(str, Enum):
    """Built-in step types. The registry may add more."""

    INFORMATION = "INFORMATION"
    QUESTION = "QUESTION"
    CONSENT = "CONSENT"
    CHECKOUT = "CHECKOUT"
    PROVIDER_REVIEW = "PROVIDER_REVIEW"


class RunStatus(str, Enum):
    """Lifecycle status of an assessment run."""

    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"
    REVIEWED = "REVIEWED"
    ARCHIVED = "ARCHIVED"


class FlowStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"


class Operator(str, Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IN = "in"
    CONTAINS = "contains"


KNOWN_OPERATORS = frozenset(op.value for op in Operator)

LOGIC_AND = "AND"
LOGIC_OR = "OR"
KNOWN_LOGIC = frozenset({LOGIC_AND, LOGIC_OR})

# Key under which normalized answers are stored in StepResponse.data.
RESPONSE_VALUE_KEY = "value"
DEFAULT_RULE_PATH = RESPONSE_VALUE_KEY
