"""Repository abstraction for flow and run persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..constants import RunStatus
from ..contracts import Flow, Step
from .models import Run, StepResponse


class FlowRepository(Protocol):
    """Protocol for flow graph and run state persistence backends."""

    async def save_flow(self, flow: Flow) -> None:
        """Insert or replace a flow with its steps and transitions."""

    async def load_flow(self, flow_id: str) -> Flow | None:
        """Return the flow with steps and transitions in creation order."""

    async def list_flows(self) -> list[Flow]:
        """Return all persisted flows."""

    async def load_step(self, step_id: str, flow_id: Optional[str] = None) -> Step | None:
        """Return a single step by id, optionally scoped to one flow."""

    async def create_run(
        self, flow_id: str, subject_id: str, current_step_id: Optional[str]
    ) -> Run:
        """Create a DRAFT run positioned at ``current_step_id``."""

    async def get_run(self, run_id: str) -> Run | None:
        """Return the run by id."""

    async def list_runs(self, flow_id: Optional[str] = None) -> list[Run]:
        """Return runs, optionally restricted to one flow."""

    async def load_responses(self, run_id: str) -> list[StepResponse]:
        """Return a run's step responses ordered by creation."""

    async def save_step_response(
        self, run_id: str, step_id: str, data: Any
    ) -> StepResponse:
        """Append a new immutable step response."""

    async def record_submission(
        self,
        run_id: str,
        step_id: str,
        data: Any,
        next_step_id: Optional[str],
        completed_at: Optional[datetime] = None,
    ) -> tuple[StepResponse, Run]:
        """Atomically store a response for ``step_id`` and advance the run.

        Applies only while the run is DRAFT and positioned at ``step_id``;
        otherwise raises :class:`InvalidStepError` and stores nothing. A
        ``completed_at`` marks the run COMPLETED with no current step.
        """

    async def update_run_status(
        self, run_id: str, status: RunStatus, completed_at: Optional[datetime] = None
    ) -> Run:
        """Persist a status change."""

    async def update_run_position(self, run_id: str, step_id: Optional[str]) -> Run:
        """Move the run to ``step_id`` (``None`` once traversal ended)."""
