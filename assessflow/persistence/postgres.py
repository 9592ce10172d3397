"""PostgreSQL implementation of the flow repository."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..constants import FlowStatus, RunStatus
from ..contracts import Flow, Step, Transition
from ..errors import RunNotFoundError
from .models import Run, StepResponse, stale_submission, utcnow
from .repository import FlowRepository


def _json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


def _row_to_step(r: asyncpg.Record) -> Step:
    return Step(
        id=r["id"],
        flow_id=r["flow_id"],
        type=r["type"],
        title=r["title"],
        config=_json(r["config"]) or {},
        position=_json(r["position"]),
    )


def _row_to_run(r: asyncpg.Record) -> Run:
    return Run(
        id=r["id"],
        flow_id=r["flow_id"],
        subject_id=r["subject_id"],
        status=RunStatus(r["status"]),
        current_step_id=r["current_step_id"],
        started_at=r["started_at"],
        completed_at=r["completed_at"],
    )


_RUN_COLUMNS = "id, flow_id, subject_id, status, current_step_id, started_at, completed_at"


class PostgresFlowRepository(FlowRepository):
    """Persist flows and runs using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS flows (
                id TEXT PRIMARY KEY,
                title TEXT,
                status TEXT NOT NULL,
                start_step_id TEXT,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS flow_steps (
                flow_id TEXT NOT NULL REFERENCES flows(id) ON DELETE CASCADE,
                id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                type TEXT NOT NULL,
                title TEXT,
                config JSONB NOT NULL,
                position JSONB,
                PRIMARY KEY (flow_id, id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS flow_transitions (
                flow_id TEXT NOT NULL REFERENCES flows(id) ON DELETE CASCADE,
                id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                from_step_id TEXT NOT NULL,
                to_step_id TEXT NOT NULL,
                condition_json JSONB,
                sort_order INTEGER NOT NULL,
                PRIMARY KEY (flow_id, id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                flow_id TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_id TEXT,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_responses (
                id SERIAL PRIMARY KEY,
                run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
                step_id TEXT NOT NULL,
                data JSONB,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    async def _fetch_run(self, conn: asyncpg.Connection, run_id: str) -> Run:
        row = await conn.fetchrow(f"SELECT {_RUN_COLUMNS} FROM runs WHERE id = $1", run_id)
        if not row:
            raise RunNotFoundError(run_id)
        return _row_to_run(row)

    # ------------------------------------------------------------------
    async def save_flow(self, flow: Flow) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute("DELETE FROM flow_transitions WHERE flow_id = $1", flow.id)
                await conn.execute("DELETE FROM flow_steps WHERE flow_id = $1", flow.id)
                await conn.execute(
                    """
                    INSERT INTO flows (id, title, status, start_step_id, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (id) DO UPDATE
                    SET title = EXCLUDED.title, status = EXCLUDED.status,
                        start_step_id = EXCLUDED.start_step_id
                    """,
                    flow.id,
                    flow.title,
                    flow.status.value,
                    flow.start_step_id,
                    flow.created_at,
                )
                await conn.executemany(
                    "INSERT INTO flow_steps (flow_id, id, seq, type, title, config, position) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    [
                        (
                            flow.id,
                            step.id,
                            seq,
                            step.type,
                            step.title,
                            json.dumps(step.config),
                            json.dumps(step.position) if step.position is not None else None,
                        )
                        for seq, step in enumerate(flow.steps)
                    ],
                )
                await conn.executemany(
                    "INSERT INTO flow_transitions (flow_id, id, seq, from_step_id, to_step_id, condition_json, sort_order) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    [
                        (
                            flow.id,
                            t.id,
                            seq,
                            t.from_step_id,
                            t.to_step_id,
                            json.dumps(t.condition) if t.condition is not None else None,
                            t.order,
                        )
                        for seq, t in enumerate(flow.transitions)
                    ],
                )
        finally:
            await conn.close()

    async def load_flow(self, flow_id: str) -> Flow | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, title, status, start_step_id, created_at FROM flows WHERE id = $1",
                flow_id,
            )
            if not row:
                return None
            step_rows = await conn.fetch(
                "SELECT flow_id, id, type, title, config, position FROM flow_steps WHERE flow_id = $1 ORDER BY seq",
                flow_id,
            )
            transition_rows = await conn.fetch(
                "SELECT flow_id, id, from_step_id, to_step_id, condition_json, sort_order FROM flow_transitions WHERE flow_id = $1 ORDER BY seq",
                flow_id,
            )
        finally:
            await conn.close()
        return Flow(
            id=row["id"],
            title=row["title"],
            status=FlowStatus(row["status"]),
            start_step_id=row["start_step_id"],
            created_at=row["created_at"],
            steps=[_row_to_step(r) for r in step_rows],
            transitions=[
                Transition(
                    id=r["id"],
                    flow_id=r["flow_id"],
                    from_step_id=r["from_step_id"],
                    to_step_id=r["to_step_id"],
                    condition=_json(r["condition_json"]),
                    order=r["sort_order"],
                )
                for r in transition_rows
            ],
        )

    async def list_flows(self) -> list[Flow]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT id FROM flows ORDER BY created_at")
        finally:
            await conn.close()
        flows: list[Flow] = []
        for row in rows:
            flow = await self.load_flow(row["id"])
            if flow is not None:
                flows.append(flow)
        return flows

    async def load_step(self, step_id: str, flow_id: Optional[str] = None) -> Step | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT flow_id, id, type, title, config, position FROM flow_steps "
                "WHERE id = $1 AND ($2::TEXT IS NULL OR flow_id = $2)",
                step_id,
                flow_id,
            )
        finally:
            await conn.close()
        return _row_to_step(row) if row else None

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
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO runs ({_RUN_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                run.id,
                run.flow_id,
                run.subject_id,
                run.status.value,
                run.current_step_id,
                run.started_at,
                None,
            )
        finally:
            await conn.close()
        return run

    async def get_run(self, run_id: str) -> Run | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(f"SELECT {_RUN_COLUMNS} FROM runs WHERE id = $1", run_id)
        finally:
            await conn.close()
        return _row_to_run(row) if row else None

    async def list_runs(self, flow_id: Optional[str] = None) -> list[Run]:
        conn = await self._connect()
        try:
            if flow_id is None:
                rows = await conn.fetch(f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY started_at")
            else:
                rows = await conn.fetch(
                    f"SELECT {_RUN_COLUMNS} FROM runs WHERE flow_id = $1 ORDER BY started_at",
                    flow_id,
                )
        finally:
            await conn.close()
        return [_row_to_run(r) for r in rows]

    async def load_responses(self, run_id: str) -> list[StepResponse]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, run_id, step_id, data, created_at FROM step_responses WHERE run_id = $1 ORDER BY id",
                run_id,
            )
        finally:
            await conn.close()
        return [
            StepResponse(
                id=r["id"],
                run_id=r["run_id"],
                step_id=r["step_id"],
                data=_json(r["data"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def save_step_response(
        self, run_id: str, step_id: str, data: Any
    ) -> StepResponse:
        created_at = utcnow()
        conn = await self._connect()
        try:
            await self._fetch_run(conn, run_id)
            response_id = await conn.fetchval(
                "INSERT INTO step_responses (run_id, step_id, data, created_at) VALUES ($1, $2, $3, $4) RETURNING id",
                run_id,
                step_id,
                json.dumps(data),
                created_at,
            )
        finally:
            await conn.close()
        return StepResponse(
            id=response_id, run_id=run_id, step_id=step_id, data=data, created_at=created_at
        )

    async def record_submission(
        self,
        run_id: str,
        step_id: str,
        data: Any,
        next_step_id: Optional[str],
        completed_at: Optional[datetime] = None,
    ) -> tuple[StepResponse, Run]:
        created_at = utcnow()
        status = RunStatus.COMPLETED if completed_at is not None else RunStatus.DRAFT
        conn = await self._connect()
        try:
            async with conn.transaction():
                moved = await conn.fetchval(
                    """
                    UPDATE runs
                    SET current_step_id = $1, status = $2,
                        completed_at = COALESCE($3, completed_at)
                    WHERE id = $4 AND status = $5 AND current_step_id = $6
                    RETURNING id
                    """,
                    next_step_id,
                    status.value,
                    completed_at,
                    run_id,
                    RunStatus.DRAFT.value,
                    step_id,
                )
                response_id = None
                if moved is not None:
                    response_id = await conn.fetchval(
                        "INSERT INTO step_responses (run_id, step_id, data, created_at) VALUES ($1, $2, $3, $4) RETURNING id",
                        run_id,
                        step_id,
                        json.dumps(data),
                        created_at,
                    )
            run = await self._fetch_run(conn, run_id)
        finally:
            await conn.close()
        if response_id is None:
            raise stale_submission(run, step_id)
        response = StepResponse(
            id=response_id, run_id=run_id, step_id=step_id, data=data, created_at=created_at
        )
        return response, run

    async def update_run_status(
        self, run_id: str, status: RunStatus, completed_at: Optional[datetime] = None
    ) -> Run:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE runs SET status = $1, completed_at = COALESCE($2, completed_at) WHERE id = $3",
                status.value,
                completed_at,
                run_id,
            )
            return await self._fetch_run(conn, run_id)
        finally:
            await conn.close()

    async def update_run_position(self, run_id: str, step_id: Optional[str]) -> Run:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE runs SET current_step_id = $1 WHERE id = $2",
                step_id,
                run_id,
            )
            return await self._fetch_run(conn, run_id)
        finally:
            await conn.close()
