"""SQLite implementation of the flow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Tuple

from ..constants import FlowStatus, RunStatus
from ..contracts import Flow, Step, Transition
from ..errors import RunNotFoundError
from .models import Run, StepResponse, stale_submission, utcnow
from .repository import FlowRepository

Statement = Tuple[str, Sequence[Any]]


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def _loads(value: Optional[str]) -> Any:
    return None if value is None else json.loads(value)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteFlowRepository(FlowRepository):
    """Persist flows and runs using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # one connection is shared by worker threads; writes take turns
        self._write_lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS flows (
                id TEXT PRIMARY KEY,
                title TEXT,
                status TEXT NOT NULL,
                start_step_id TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS flow_steps (
                flow_id TEXT NOT NULL,
                id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                type TEXT NOT NULL,
                title TEXT,
                config TEXT NOT NULL,
                position TEXT,
                PRIMARY KEY (flow_id, id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS flow_transitions (
                flow_id TEXT NOT NULL,
                id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                from_step_id TEXT NOT NULL,
                to_step_id TEXT NOT NULL,
                condition_json TEXT,
                sort_order INTEGER NOT NULL,
                PRIMARY KEY (flow_id, id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                flow_id TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_id TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_responses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                data TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._write_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.lastrowid

    def _execute_batch(self, statements: Iterable[Statement]) -> None:
        with self._write_lock, self._conn:
            for query, params in statements:
                self._conn.execute(query, tuple(params))

    def _advance_if_at(
        self,
        run_id: str,
        step_id: str,
        response: Statement,
        next_step_id: Optional[str],
        status: str,
        completed_at: Optional[str],
    ) -> Optional[int]:
        """Move the run off ``step_id`` and insert ``response`` in one transaction.

        Returns the response row id, or ``None`` when the run was no longer
        DRAFT at ``step_id`` (nothing is written).
        """
        with self._write_lock, self._conn:
            cur = self._conn.execute(
                "UPDATE runs SET current_step_id = ?, status = ?, completed_at = COALESCE(?, completed_at) "
                "WHERE id = ? AND status = ? AND current_step_id = ?",
                (next_step_id, status, completed_at, run_id, RunStatus.DRAFT.value, step_id),
            )
            if cur.rowcount != 1:
                return None
            query, params = response
            return self._conn.execute(query, tuple(params)).lastrowid

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _row_to_step(row: sqlite3.Row) -> Step:
        return Step(
            id=row["id"],
            flow_id=row["flow_id"],
            type=row["type"],
            title=row["title"],
            config=_loads(row["config"]) or {},
            position=_loads(row["position"]),
        )

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> Run:
        return Run(
            id=row["id"],
            flow_id=row["flow_id"],
            subject_id=row["subject_id"],
            status=RunStatus(row["status"]),
            current_step_id=row["current_step_id"],
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
        )

    async def _require_run(self, run_id: str) -> Run:
        run = await self.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    # ------------------------------------------------------------------
    # Flow graph
    async def save_flow(self, flow: Flow) -> None:
        statements: list[Statement] = [
            ("DELETE FROM flow_transitions WHERE flow_id = ?", (flow.id,)),
            ("DELETE FROM flow_steps WHERE flow_id = ?", (flow.id,)),
            (
                "INSERT OR REPLACE INTO flows (id, title, status, start_step_id, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    flow.id,
                    flow.title,
                    flow.status.value,
                    flow.start_step_id,
                    flow.created_at.isoformat(),
                ),
            ),
        ]
        for seq, step in enumerate(flow.steps):
            statements.append(
                (
                    "INSERT INTO flow_steps (flow_id, id, seq, type, title, config, position) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        flow.id,
                        step.id,
                        seq,
                        step.type,
                        step.title,
                        json.dumps(step.config),
                        _dumps(step.position),
                    ),
                )
            )
        for seq, transition in enumerate(flow.transitions):
            statements.append(
                (
                    "INSERT INTO flow_transitions (flow_id, id, seq, from_step_id, to_step_id, condition_json, sort_order) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        flow.id,
                        transition.id,
                        seq,
                        transition.from_step_id,
                        transition.to_step_id,
                        _dumps(transition.condition),
                        transition.order,
                    ),
                )
            )
        await asyncio.to_thread(self._execute_batch, statements)

    async def load_flow(self, flow_id: str) -> Flow | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, title, status, start_step_id, created_at FROM flows WHERE id = ?",
            flow_id,
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT flow_id, id, type, title, config, position FROM flow_steps WHERE flow_id = ? ORDER BY seq",
            flow_id,
        )
        transition_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT flow_id, id, from_step_id, to_step_id, condition_json, sort_order FROM flow_transitions WHERE flow_id = ? ORDER BY seq",
            flow_id,
        )
        return Flow(
            id=row["id"],
            title=row["title"],
            status=FlowStatus(row["status"]),
            start_step_id=row["start_step_id"],
            created_at=_parse_ts(row["created_at"]),
            steps=[self._row_to_step(r) for r in step_rows],
            transitions=[
                Transition(
                    id=r["id"],
                    flow_id=r["flow_id"],
                    from_step_id=r["from_step_id"],
                    to_step_id=r["to_step_id"],
                    condition=_loads(r["condition_json"]),
                    order=r["sort_order"],
                )
                for r in transition_rows
            ],
        )

    async def list_flows(self) -> list[Flow]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT id FROM flows ORDER BY created_at"
        )
        flows: list[Flow] = []
        for row in rows:
            flow = await self.load_flow(row["id"])
            if flow is not None:
                flows.append(flow)
        return flows

    async def load_step(self, step_id: str, flow_id: Optional[str] = None) -> Step | None:
        query = "SELECT flow_id, id, type, title, config, position FROM flow_steps WHERE id = ?"
        params: list[Any] = [step_id]
        if flow_id is not None:
            query += " AND flow_id = ?"
            params.append(flow_id)
        row = await asyncio.to_thread(self._fetchone, query, *params)
        return self._row_to_step(row) if row else None

    # ------------------------------------------------------------------
    # Runs
    async def create_run(
        self, flow_id: str, subject_id: str, current_step_id: Optional[str]
    ) -> Run:
        run = Run(
            id=str(uuid.uuid4()),
            flow_id=flow_id,
            subject_id=subject_id,
            current_step_id=current_step_id,
        )
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO runs (id, flow_id, subject_id, status, current_step_id, started_at, completed_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            run.id,
            run.flow_id,
            run.subject_id,
            run.status.value,
            run.current_step_id,
            run.started_at.isoformat(),
            None,
        )
        return run

    async def get_run(self, run_id: str) -> Run | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, flow_id, subject_id, status, current_step_id, started_at, completed_at FROM runs WHERE id = ?",
            run_id,
        )
        return self._row_to_run(row) if row else None

    async def list_runs(self, flow_id: Optional[str] = None) -> list[Run]:
        query = "SELECT id, flow_id, subject_id, status, current_step_id, started_at, completed_at FROM runs"
        params: tuple = ()
        if flow_id is not None:
            query += " WHERE flow_id = ?"
            params = (flow_id,)
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY started_at", *params)
        return [self._row_to_run(r) for r in rows]

    async def load_responses(self, run_id: str) -> list[StepResponse]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, run_id, step_id, data, created_at FROM step_responses WHERE run_id = ? ORDER BY id",
            run_id,
        )
        return [
            StepResponse(
                id=r["id"],
                run_id=r["run_id"],
                step_id=r["step_id"],
                data=_loads(r["data"]),
                created_at=_parse_ts(r["created_at"]),
            )
            for r in rows
        ]

    async def save_step_response(
        self, run_id: str, step_id: str, data: Any
    ) -> StepResponse:
        await self._require_run(run_id)
        created_at = utcnow()
        response_id = await asyncio.to_thread(
            self._execute,
            "INSERT INTO step_responses (run_id, step_id, data, created_at) VALUES (?, ?, ?, ?)",
            run_id,
            step_id,
            _dumps(data),
            created_at.isoformat(),
        )
        return StepResponse(
            id=response_id,
            run_id=run_id,
            step_id=step_id,
            data=data,
            created_at=created_at,
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
        response_id = await asyncio.to_thread(
            self._advance_if_at,
            run_id,
            step_id,
            (
                "INSERT INTO step_responses (run_id, step_id, data, created_at) VALUES (?, ?, ?, ?)",
                (run_id, step_id, _dumps(data), created_at.isoformat()),
            ),
            next_step_id,
            status.value,
            completed_at.isoformat() if completed_at is not None else None,
        )
        run = await self._require_run(run_id)
        if response_id is None:
            raise stale_submission(run, step_id)
        response = StepResponse(
            id=response_id, run_id=run_id, step_id=step_id, data=data, created_at=created_at
        )
        return response, run

    async def update_run_status(
        self, run_id: str, status: RunStatus, completed_at: Optional[datetime] = None
    ) -> Run:
        await self._require_run(run_id)
        if completed_at is not None:
            await asyncio.to_thread(
                self._execute,
                "UPDATE runs SET status = ?, completed_at = ? WHERE id = ?",
                status.value,
                completed_at.isoformat(),
                run_id,
            )
        else:
            await asyncio.to_thread(
                self._execute,
                "UPDATE runs SET status = ? WHERE id = ?",
                status.value,
                run_id,
            )
        return await self._require_run(run_id)

    async def update_run_position(self, run_id: str, step_id: Optional[str]) -> Run:
        await self._require_run(run_id)
        await asyncio.to_thread(
            self._execute,
            "UPDATE runs SET current_step_id = ? WHERE id = ?",
            step_id,
            run_id,
        )
        return await self._require_run(run_id)
