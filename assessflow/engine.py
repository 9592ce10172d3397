"""Run execution engine for assessflow flows."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import BaseModel

from .config import AssessFlowConfig, load_config
from .constants import RunStatus
from .contracts import Flow, Step
from .errors import InvalidFlowError, InvalidStepError, RunNotFoundError
from .evaluator import ConditionEvaluator, log_rule_trace
from .persistence import FlowRepository, get_repository
from .persistence.models import Run, StepResponse, stale_submission, utcnow
from .registry import REGISTRY, StepTypeRegistry
from .selector import TransitionSelector

logger = logging.getLogger(__name__)


class SubmitResult(BaseModel):
    """Outcome of one step submission."""

    run: Run
    response: StepResponse
    completed: bool = False
    next_step: Optional[Step] = None
    transition_id: Optional[str] = None


class FlowRunner:
    """Drives runs through a flow: start, submit answers, complete.

    Each submission must name the step the run is currently positioned at.
    Stale submissions are rejected atomically by the repository, so a
    runner holds no per-run state.
    """

    def __init__(
        self,
        repository: FlowRepository | None = None,
        registry: StepTypeRegistry | None = None,
        evaluator: ConditionEvaluator | None = None,
        config: AssessFlowConfig | None = None,
    ) -> None:
        self._repository = repository or get_repository()
        self._registry = registry or REGISTRY
        if evaluator is None:
            config = config or load_config()
            evaluator = ConditionEvaluator(
                trace=log_rule_trace if config.trace_conditions else None
            )
        self._selector = TransitionSelector(evaluator)

    @property
    def repository(self) -> FlowRepository:
        return self._repository

    async def _load_flow(self, flow_id: str) -> Flow:
        flow = await self._repository.load_flow(flow_id)
        if flow is None:
            raise InvalidFlowError(f"Flow {flow_id} not found", flow_id=flow_id)
        return flow

    async def _require_run(self, run_id: str) -> Run:
        run = await self._repository.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    # ------------------------------------------------------------------
    async def start(self, flow: Union[Flow, str], subject_id: str) -> Run:
        """Begin a DRAFT run positioned at the flow's start step."""
        if isinstance(flow, str):
            flow = await self._load_flow(flow)
        if not flow.is_executable():
            raise InvalidFlowError(
                f"Flow {flow.id} has no resolvable start step", flow_id=flow.id
            )
        run = await self._repository.create_run(flow.id, subject_id, flow.start_step_id)
        logger.info(
            f"Started run {run.id} of flow {flow.id} for subject {subject_id} at step {flow.start_step_id}"
        )
        return run

    async def submit(
        self, run_id: str, current_step_id: str, raw_response: Any
    ) -> SubmitResult:
        """Record an answer for the current step and advance or complete.

        The repository applies the answer only if the run is still at
        ``current_step_id``, so concurrent submissions for one step (from
        any runner or process) store exactly one response.
        """
        run = await self._require_run(run_id)
        if not run.accepts(current_step_id):
            raise stale_submission(run, current_step_id)

        flow = await self._load_flow(run.flow_id)
        step = flow.step(current_step_id)
        if step is None:
            raise InvalidStepError(
                f"Step {current_step_id} no longer exists in flow {flow.id}",
                run_id=run_id,
                step_id=current_step_id,
            )

        data = self._registry.normalize(step.type, raw_response, step.config)
        pending = StepResponse(run_id=run_id, step_id=step.id, data=data)
        history = [*await self._repository.load_responses(run_id), pending]
        transition = self._selector.select_transition(flow, step.id, history)

        if transition is None:
            response, run = await self._repository.record_submission(
                run_id, step.id, data, None, completed_at=utcnow()
            )
            logger.info(f"Run {run_id} completed after step {step.id}")
            return SubmitResult(run=run, response=response, completed=True)

        next_step = flow.step(transition.to_step_id)
        response, run = await self._repository.record_submission(
            run_id, step.id, data, next_step.id
        )
        logger.info(
            f"Run {run_id} advanced {step.id} -> {next_step.id} via transition {transition.id}"
        )
        return SubmitResult(
            run=run,
            response=response,
            next_step=next_step,
            transition_id=transition.id,
        )

    async def status(self, run_id: str) -> RunStatus:
        run = await self._require_run(run_id)
        return run.status

    async def current_step(self, run_id: str) -> Optional[Step]:
        """Step the run is waiting on, or ``None`` once it has finished."""
        run = await self._require_run(run_id)
        if not run.is_running or run.current_step_id is None:
            return None
        return await self._repository.load_step(run.current_step_id, flow_id=run.flow_id)

    async def record_review(self, run_id: str, status: RunStatus) -> Run:
        """Apply a reviewer decision (REVIEWED or ARCHIVED) to a run."""
        run = await self._require_run(run_id)
        if status == RunStatus.REVIEWED:
            if run.status not in (RunStatus.COMPLETED, RunStatus.REVIEWED):
                raise ValueError(
                    f"Run {run_id} is {run.status.value}; only completed runs can be reviewed"
                )
        elif status != RunStatus.ARCHIVED:
            raise ValueError(f"Review status must be REVIEWED or ARCHIVED, got {status}")
        run = await self._repository.update_run_status(run_id, status)
        logger.info(f"Run {run_id} marked {status.value}")
        return run


def run_status(run: Run) -> RunStatus:
    """Status of an already-loaded run."""
    return run.status


__all__ = ["FlowRunner", "SubmitResult", "run_status"]
