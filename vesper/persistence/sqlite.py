"""SQLite implementation of the step repository."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any

from .models import SESSION_FIELDS, SessionRecord, StepRecord, StepStatus, is_regression
from .repository import StepRepository

logger = logging.getLogger(__name__)


class SQLiteStepRepository(StepRepository):
    """Persist step state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS nightly_steps (
                session_date TEXT NOT NULL,
                step_id INTEGER NOT NULL,
                status TEXT NOT NULL,
                details TEXT,
                result_json TEXT,
                link_url TEXT,
                updated_at TEXT,
                PRIMARY KEY (session_date, step_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS nightly_sessions (
                session_date TEXT PRIMARY KEY,
                started_at TEXT,
                diary_doc_id TEXT,
                plan_doc_id TEXT,
                report_content TEXT,
                report_pdf_id TEXT,
                reflection_xp INTEGER
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _put_step(
        self,
        session_date: date,
        step_id: int,
        status: StepStatus,
        details: str | None,
        result_json: str | None,
        link_url: str | None,
    ) -> bool:
        # read and write on the same connection under one transaction
        with self._conn:
            row = self._conn.execute(
                "SELECT status FROM nightly_steps WHERE session_date = ? AND step_id = ?",
                (session_date.isoformat(), step_id),
            ).fetchone()
            if row and is_regression(StepStatus(row["status"]), status):
                return False
            self._conn.execute(
                """
                INSERT INTO nightly_steps
                    (session_date, step_id, status, details, result_json, link_url, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (session_date, step_id) DO UPDATE SET
                    status = excluded.status,
                    details = excluded.details,
                    result_json = excluded.result_json,
                    link_url = excluded.link_url,
                    updated_at = excluded.updated_at
                """,
                (
                    session_date.isoformat(),
                    step_id,
                    status.value,
                    details,
                    result_json,
                    link_url,
                    datetime.utcnow().isoformat(),
                ),
            )
        return True

    @staticmethod
    def _step_from_row(row: sqlite3.Row) -> StepRecord:
        return StepRecord(
            session_date=date.fromisoformat(row["session_date"]),
            step_id=row["step_id"],
            status=StepStatus(row["status"]),
            details=row["details"],
            result_json=row["result_json"],
            link_url=row["link_url"],
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )

    @staticmethod
    def _session_from_row(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            session_date=date.fromisoformat(row["session_date"]),
            started_at=datetime.fromisoformat(row["started_at"]) if row["started_at"] else None,
            diary_doc_id=row["diary_doc_id"],
            plan_doc_id=row["plan_doc_id"],
            report_content=row["report_content"],
            report_pdf_id=row["report_pdf_id"],
            reflection_xp=row["reflection_xp"],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def get_step(self, session_date: date, step_id: int) -> StepRecord:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM nightly_steps WHERE session_date = ? AND step_id = ?",
            session_date.isoformat(),
            step_id,
        )
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
        written = await asyncio.to_thread(
            self._put_step, session_date, step_id, status, details, result_json, link_url
        )
        if not written:
            logger.warning(
                f"Refusing to move step {step_id} of {session_date} from COMPLETED to PENDING"
            )

    async def list_steps(self, session_date: date) -> list[StepRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM nightly_steps WHERE session_date = ? ORDER BY step_id",
            session_date.isoformat(),
        )
        return [self._step_from_row(r) for r in rows]

    async def get_session(self, session_date: date) -> SessionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM nightly_sessions WHERE session_date = ?",
            session_date.isoformat(),
        )
        return self._session_from_row(row) if row else None

    async def update_session(self, session_date: date, **fields: Any) -> None:
        unknown = set(fields) - set(SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        await asyncio.to_thread(
            self._execute,
            "INSERT OR IGNORE INTO nightly_sessions (session_date, started_at) VALUES (?, ?)",
            session_date.isoformat(),
            datetime.utcnow().isoformat(),
        )
        for key, value in fields.items():
            # column names come from SESSION_FIELDS only
            await asyncio.to_thread(
                self._execute,
                f"UPDATE nightly_sessions SET {key} = ? WHERE session_date = ?",
                value,
                session_date.isoformat(),
            )

    async def list_sessions(self) -> list[SessionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM nightly_sessions ORDER BY session_date DESC",
        )
        return [self._session_from_row(r) for r in rows]

    async def clear_session(self, session_date: date) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM nightly_steps WHERE session_date = ?",
            session_date.isoformat(),
        )
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM nightly_sessions WHERE session_date = ?",
            session_date.isoformat(),
        )
