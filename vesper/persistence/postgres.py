"""PostgreSQL implementation of the step repository."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

import asyncpg

from .models import SESSION_FIELDS, SessionRecord, StepRecord, StepStatus
from .repository import StepRepository

logger = logging.getLogger(__name__)


class PostgresStepRepository(StepRepository):
    """Persist step state using PostgreSQL."""

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
            CREATE TABLE IF NOT EXISTS nightly_steps (
                session_date DATE NOT NULL,
                step_id INTEGER NOT NULL,
                status TEXT NOT NULL,
                details TEXT,
                result_json TEXT,
                link_url TEXT,
                updated_at TIMESTAMP,
                PRIMARY KEY (session_date, step_id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS nightly_sessions (
                session_date DATE PRIMARY KEY,
                started_at TIMESTAMP,
                diary_doc_id TEXT,
                plan_doc_id TEXT,
                report_content TEXT,
                report_pdf_id TEXT,
                reflection_xp INTEGER
            )
            """
        )

    @staticmethod
    def _step_from_row(row: asyncpg.Record) -> StepRecord:
        return StepRecord(
            session_date=row["session_date"],
            step_id=row["step_id"],
            status=StepStatus(row["status"]),
            details=row["details"],
            result_json=row["result_json"],
            link_url=row["link_url"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _session_from_row(row: asyncpg.Record) -> SessionRecord:
        return SessionRecord(**{key: row[key] for key in SessionRecord.model_fields})

    # ------------------------------------------------------------------
    async def get_step(self, session_date: date, step_id: int) -> StepRecord:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM nightly_steps WHERE session_date = $1 AND step_id = $2",
                session_date,
                step_id,
            )
        finally:
            await conn.close()
        if not row:
            return StepRecord(session_date=session_date, step_id=step_id)
        return self._step_from_row(row)

    async def put_step(
        self,
        session_date: date,
        step_id: int,
        status: StepStatus,
        details: str | None = None,
        result_json: str | None = None,
        link_url: str | None = None,
    ) -> None:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                INSERT INTO nightly_steps
                    (session_date, step_id, status, details, result_json, link_url, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (session_date, step_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    details = EXCLUDED.details,
                    result_json = EXCLUDED.result_json,
                    link_url = EXCLUDED.link_url,
                    updated_at = EXCLUDED.updated_at
                WHERE NOT (nightly_steps.status = 'COMPLETED' AND EXCLUDED.status = 'PENDING')
                """,
                session_date,
                step_id,
                status.value,
                details,
                result_json,
                link_url,
                datetime.utcnow(),
            )
        finally:
            await conn.close()
        if result.endswith(" 0"):
            logger.warning(
                f"Refusing to move step {step_id} of {session_date} from COMPLETED to PENDING"
            )

    async def list_steps(self, session_date: date) -> list[StepRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM nightly_steps WHERE session_date = $1 ORDER BY step_id",
                session_date,
            )
        finally:
            await conn.close()
        return [self._step_from_row(r) for r in rows]

    async def get_session(self, session_date: date) -> SessionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM nightly_sessions WHERE session_date = $1",
                session_date,
            )
        finally:
            await conn.close()
        return self._session_from_row(row) if row else None

    async def update_session(self, session_date: date, **fields: Any) -> None:
        unknown = set(fields) - set(SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO nightly_sessions (session_date, started_at)
                    VALUES ($1, $2) ON CONFLICT (session_date) DO NOTHING
                    """,
                    session_date,
                    datetime.utcnow(),
                )
                for key, value in fields.items():
                    await conn.execute(
                        f"UPDATE nightly_sessions SET {key} = $1 WHERE session_date = $2",
                        value,
                        session_date,
                    )
        finally:
            await conn.close()

    async def list_sessions(self) -> list[SessionRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM nightly_sessions ORDER BY session_date DESC"
            )
        finally:
            await conn.close()
        return [self._session_from_row(r) for r in rows]

    async def clear_session(self, session_date: date) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM nightly_steps WHERE session_date = $1", session_date
            )
            await conn.execute(
                "DELETE FROM nightly_sessions WHERE session_date = $1", session_date
            )
        finally:
            await conn.close()
