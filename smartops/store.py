from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import (
    AssetStatus,
    AutomationRecord,
    AutomationStatus,
    ExecutionRecord,
    ExecutionStatus,
    SourceAsset,
    utcnow,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteStore:
    def __init__(self, db_path: str | Path = "data/smartops.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS automations (
                    code TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    endpoint_url TEXT,
                    last_run_at TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    automation_code TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    logs TEXT,
                    result TEXT,
                    FOREIGN KEY(automation_code) REFERENCES automations(code)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS source_assets (
                    external_id TEXT PRIMARY KEY,
                    file_name TEXT NOT NULL,
                    folder_path TEXT NOT NULL,
                    size INTEGER NOT NULL DEFAULT 0,
                    group_name TEXT,
                    period TEXT,
                    local_path TEXT,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    # Automations

    def ensure_automation(self, code: str, endpoint_url: str | None = None) -> AutomationRecord:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM automations WHERE code = ?", (code,)).fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO automations (code, status, endpoint_url, metadata) VALUES (?, ?, ?, ?)",
                    (code, AutomationStatus.OPERATIONAL.value, endpoint_url, "{}"),
                )
            elif endpoint_url is not None and row["endpoint_url"] != endpoint_url:
                conn.execute(
                    "UPDATE automations SET endpoint_url = ? WHERE code = ?",
                    (endpoint_url, code),
                )
            row = conn.execute("SELECT * FROM automations WHERE code = ?", (code,)).fetchone()
        return self._automation_from_row(row)

    def get_automation(self, code: str) -> AutomationRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM automations WHERE code = ?", (code,)).fetchone()
        if not row:
            return None
        return self._automation_from_row(row)

    def list_automations(self) -> dict[str, AutomationRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM automations").fetchall()
        return {row["code"]: self._automation_from_row(row) for row in rows}

    def update_automation(
        self,
        code: str,
        status: AutomationStatus,
        summary: str,
        last_run_at: datetime | None = None,
    ) -> AutomationRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT metadata FROM automations WHERE code = ?", (code,)).fetchone()
            if not row:
                return None
            metadata = self._load_json(row["metadata"])
            metadata["summary"] = summary
            conn.execute(
                "UPDATE automations SET status = ?, last_run_at = ?, metadata = ? WHERE code = ?",
                (
                    status.value,
                    _iso(last_run_at or utcnow()),
                    json.dumps(metadata, default=str),
                    code,
                ),
            )
        return self.get_automation(code)

    # Executions

    def create_execution(self, code: str) -> ExecutionRecord:
        started_at = utcnow()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO executions (automation_code, status, started_at) VALUES (?, ?, ?)",
                (code, ExecutionStatus.RUNNING.value, started_at.isoformat()),
            )
            execution_id = cursor.lastrowid
        return ExecutionRecord(
            id=execution_id,
            automation_code=code,
            status=ExecutionStatus.RUNNING,
            started_at=started_at,
        )

    def finish_execution(
        self,
        execution_id: int,
        status: ExecutionStatus,
        logs: str | None = None,
        result: Any = None,
    ) -> ExecutionRecord | None:
        result_blob = json.dumps(result, default=str) if result is not None else None
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE executions
                SET status = ?, finished_at = ?, logs = ?, result = ?
                WHERE id = ?
                """,
                (status.value, utcnow().isoformat(), logs, result_blob, execution_id),
            )
        return self.get_execution(execution_id)

    def get_execution(self, execution_id: int) -> ExecutionRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM executions WHERE id = ?", (execution_id,)).fetchone()
        if not row:
            return None
        return self._execution_from_row(row)

    def list_executions(self, code: str, limit: int = 25) -> list[ExecutionRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM executions WHERE automation_code = ? ORDER BY id DESC LIMIT ?",
                (code, limit),
            ).fetchall()
        return [self._execution_from_row(row) for row in rows]

    # Source assets

    def get_asset(self, external_id: str) -> SourceAsset | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM source_assets WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        if not row:
            return None
        return self._asset_from_row(row)

    def create_asset(self, asset: SourceAsset) -> bool:
        """Insert the asset unless its external id is already known."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO source_assets (
                    external_id, file_name, folder_path, size, group_name, period,
                    local_path, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(external_id) DO NOTHING
                """,
                self._asset_params(asset),
            )
        return cursor.rowcount == 1

    def upsert_asset(self, asset: SourceAsset) -> SourceAsset:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO source_assets (
                    external_id, file_name, folder_path, size, group_name, period,
                    local_path, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(external_id) DO UPDATE SET
                    file_name = excluded.file_name,
                    folder_path = excluded.folder_path,
                    size = excluded.size,
                    group_name = excluded.group_name,
                    period = excluded.period,
                    local_path = excluded.local_path,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                self._asset_params(asset),
            )
        stored = self.get_asset(asset.external_id)
        return stored if stored is not None else asset

    def list_assets(self, status: AssetStatus | None = None) -> list[SourceAsset]:
        query = "SELECT * FROM source_assets"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
        return [self._asset_from_row(row) for row in rows]

    def count_assets(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM source_assets").fetchone()
        return int(row["total"])

    def _asset_params(self, asset: SourceAsset) -> tuple[Any, ...]:
        return (
            asset.external_id,
            asset.file_name,
            asset.folder_path,
            asset.size,
            asset.group,
            asset.period,
            asset.local_path,
            asset.status.value,
            asset.created_at.isoformat(),
            utcnow().isoformat(),
        )

    def _automation_from_row(self, row: sqlite3.Row) -> AutomationRecord:
        return AutomationRecord(
            code=row["code"],
            status=row["status"],
            endpoint_url=row["endpoint_url"],
            last_run_at=_parse(row["last_run_at"]),
            metadata=self._load_json(row["metadata"]),
        )

    def _execution_from_row(self, row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            automation_code=row["automation_code"],
            status=ExecutionStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            finished_at=_parse(row["finished_at"]),
            logs=row["logs"],
            result=json.loads(row["result"]) if row["result"] else None,
        )

    def _asset_from_row(self, row: sqlite3.Row) -> SourceAsset:
        return SourceAsset(
            external_id=row["external_id"],
            file_name=row["file_name"],
            folder_path=row["folder_path"],
            size=row["size"],
            group=row["group_name"],
            period=row["period"],
            local_path=row["local_path"],
            status=AssetStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _load_json(raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
