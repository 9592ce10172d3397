"""Error taxonomy for flow execution and publishing."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .validation import ValidationIssue


class AssessFlowError(Exception):
    """Base class for errors raised at the engine boundary."""


class InvalidFlowError(AssessFlowError):
    """The flow cannot be executed (no resolvable start step)."""

    def __init__(self, message: str, flow_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.flow_id = flow_id


class InvalidStepError(AssessFlowError):
    """A submission targets a step that is not the run's current position."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        step_id: Optional[str] = None,
        expected_step_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.step_id = step_id
        self.expected_step_id = expected_step_id


class RunNotFoundError(AssessFlowError):
    """Unknown run id."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} not found")
        self.run_id = run_id


class FlowValidationError(AssessFlowError):
    """Structural problems block publishing; all issues are reported at once."""

    def __init__(self, issues: List["ValidationIssue"]) -> None:
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues[:3])
        more = len(self.issues) - 3
        if more > 0:
            summary += f" (+{more} more)"
        super().__init__(f"Flow failed validation: {summary}")


__all__ = [
    "AssessFlowError",
    "InvalidFlowError",
    "InvalidStepError",
    "RunNotFoundError",
    "FlowValidationError",
]
