"""assessflow: branching patient-assessment flows and their run engine."""

from .builder import FlowBuilder, load_flow_file
from .constants import FlowStatus, RunStatus, StepType
from .contracts import Condition, Flow, Rule, Step, Transition
from .engine import FlowRunner, SubmitResult
from .errors import (
    AssessFlowError,
    FlowValidationError,
    InvalidFlowError,
    InvalidStepError,
    RunNotFoundError,
)
from .evaluator import ConditionEvaluator, evaluate
from .paths import UNDEFINED, resolve
from .persistence import Run, StepResponse, get_repository
from .registry import REGISTRY, register_step_type
from .selector import TransitionSelector, select_next
from .validation import FlowValidator, ValidationResult, publish_flow, validate

__version__ = "0.1.0"
__all__ = [
    "AssessFlowError",
    "Condition",
    "ConditionEvaluator",
    "Flow",
    "FlowBuilder",
    "FlowRunner",
    "FlowStatus",
    "FlowValidationError",
    "FlowValidator",
    "InvalidFlowError",
    "InvalidStepError",
    "REGISTRY",
    "Rule",
    "Run",
    "RunNotFoundError",
    "RunStatus",
    "Step",
    "StepResponse",
    "StepType",
    "SubmitResult",
    "Transition",
    "TransitionSelector",
    "UNDEFINED",
    "ValidationResult",
    "evaluate",
    "get_repository",
    "load_flow_file",
    "publish_flow",
    "register_step_type",
    "resolve",
    "select_next",
    "validate",
]
