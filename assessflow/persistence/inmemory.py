"""In-memory implementation of the flow repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..constants import RunStatus
from ..contracts import Flow, Step
from ..errors import RunNotFoundError
from .models import Run, StepResponse, stale_submission
from .repository import FlowRepository


def _clone_flow(flow: Flow) -> Flow:
    # Re-validating rebuilds the adjacency index against the copied steps.
    return Flow.model_validate(flow.model_dump())


class InMemoryFlowRepository(FlowRepository):
    """Store flows and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._flows: Dict[str, Flow] = {}
        self._runs: Dict[str, Run] = {}
        self._responses: Dict[str, List[StepResponse]] = {}
        self._response_id = 0

    # ------------------------------------------------------------------
    async def save_flow(self, flow: Flow) -> None:
        self._flows[flow.id] = _clone_flow(flow)

    async def load_flow(self, flow_id: str) -> Flow | None:
        flow = self._flows.get(flow_id)
        return _clone_flow(flow) if flow else None

    async def list_flows(self) -> list[Flow]:
        return [_clone_flow(flow) for flow in self._flows.values()]

    async def load_step(self, step_id: str, flow_id: Optional[str] = None) -> Step | None:
        for flow in self._flows.values():
            if flow_id is not None and flow.id != flow_id:
                continue
            step = flow.step(step_id)
            if step is not None:
                return step.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    async def create_run(
        self, flow_id: str, subject_id: str, current_step_id: Optional[str]
    ) -> Run:
        run = Run(
            id=str(uuid.uuid4()),
            flow_id=flow_id,
            subject_id=subject_id,
            current_step_id=current_step_id,
        )
        self._runs[run.id] = run
        self._responses[run.id] = []
        return run.model_copy()

    async def get_run(self, run_id: str) -> Run | None:
        run = self._runs.get(run_id)
        return run.model_copy() if run else None

    async def list_runs(self, flow_id: Optional[str] = None) -> list[Run]:
        return [
            run.model_copy()
            for run in self._runs.values()
            if flow_id is None or run.flow_id == flow_id
        ]

    async def load_responses(self, run_id: str) -> list[StepResponse]:
        return [r.model_copy(deep=True) for r in self._responses.get(run_id, [])]

    async def save_step_response(
        self, run_id: str, step_id: str, data: Any
    ) -> StepResponse:
        if run_id not in self._runs:
            raise RunNotFoundError(run_id)
        self._response_id += 1
        response = StepResponse(
            id=self._response_id, run_id=run_id, step_id=step_id, data=data
        )
        self._responses[run_id].append(response)
        return response.model_copy(deep=True)

    async def record_submission(
        self,
        run_id: str,
        step_id: str,
        data: Any,
        next_step_id: Optional[str],
        completed_at: Optional[datetime] = None,
    ) -> tuple[StepResponse, Run]:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if not run.accepts(step_id):
            raise stale_submission(run, step_id)
        response = await self.save_step_response(run_id, step_id, data)
        run.current_step_id = next_step_id
        if completed_at is not None:
            run.status = RunStatus.COMPLETED
            run.completed_at = completed_at
        return response, run.model_copy()

    async def update_run_status(
        self, run_id: str, status: RunStatus, completed_at: Optional[datetime] = None
    ) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        run.status = status
        if completed_at is not None:
            run.completed_at = completed_at
        return run.model_copy()

    async def update_run_position(self, run_id: str, step_id: Optional[str]) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        run.current_step_id = step_id
        return run.model_copy()
