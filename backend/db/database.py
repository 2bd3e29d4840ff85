from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from backend.config import settings
from backend.models import (
    AlertingRule,
    AlertRecord,
    AlertRequest,
    AlertStatus,
    LogCreate,
    LogEvent,
    RuleCreate,
    RuleUpdate,
    StatusTransitionError,
    can_transition,
)

_SCHEMA_PATH = Path(__file__).with_name("schema.sql")


async def init_db() -> None:
    """Create tables if they don't exist."""
    Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
    schema = _SCHEMA_PATH.read_text()
    async with aiosqlite.connect(settings.db_path) as db:
        await db.executescript(schema)
        await db.commit()


# ── logs ────────────────────────────────────────────────

async def insert_log(data: LogCreate) -> LogEvent:
    """Persist a log entry; id and timestamp are assigned here."""
    event = LogEvent(**data.model_dump())
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute(
            """INSERT INTO logs
               (id, timestamp, level, source, ip_address, event_type, message, metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                event.id,
                event.timestamp.isoformat(),
                event.level.value,
                event.source,
                event.ip_address,
                event.event_type,
                event.message,
                event.metadata,
            ),
        )
        await db.commit()
    return event


async def get_logs(
    level: str | None = None,
    limit: int = 1000,
    offset: int = 0,
) -> list[LogEvent]:
    query = "SELECT * FROM logs"
    params: list = []
    if level:
        query += " WHERE level = ?"
        params.append(level)
    query += " ORDER BY timestamp DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [LogEvent.model_validate(dict(r)) for r in rows]


async def get_recent_logs(limit: int = 20) -> list[LogEvent]:
    return await get_logs(limit=limit)


# ── alerts ──────────────────────────────────────────────

async def insert_alert(request: AlertRequest) -> AlertRecord:
    """Persist a new alert. Alerts always start out active."""
    alert = AlertRecord(**request.model_dump(), status=AlertStatus.ACTIVE)
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute(
            """INSERT INTO alerts
               (id, timestamp, severity, title, description, source, ip_address, status)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                alert.id,
                alert.timestamp.isoformat(),
                alert.severity.value,
                alert.title,
                alert.description,
                alert.source,
                alert.ip_address,
                alert.status.value,
            ),
        )
        await db.commit()
    return alert


async def get_alerts(
    severity: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AlertRecord]:
    query = "SELECT * FROM alerts"
    clauses: list[str] = []
    params: list = []
    if severity:
        clauses.append("severity = ?")
        params.append(severity)
    if status:
        clauses.append("status = ?")
        params.append(status)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY timestamp DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [AlertRecord.model_validate(dict(r)) for r in rows]


async def get_alert_by_id(alert_id: str) -> AlertRecord | None:
    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        row = await cursor.fetchone()
        return AlertRecord.model_validate(dict(row)) if row else None


async def update_alert_status(
    alert_id: str,
    new_status: AlertStatus,
    timestamp: datetime | None = None,
) -> AlertRecord | None:
    """Advance an alert's status. Returns None when the alert doesn't exist.

    Raises StatusTransitionError if the move isn't strictly forward.
    """
    when = (timestamp or datetime.now(timezone.utc)).isoformat()
    column = "acknowledged_at" if new_status is AlertStatus.ACKNOWLEDGED else "resolved_at"

    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute("SELECT status FROM alerts WHERE id = ?", (alert_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        current = AlertStatus(row["status"])
        if not can_transition(current, new_status):
            raise StatusTransitionError(current, new_status)

        # status guard keeps a concurrent update from being overwritten
        cursor = await db.execute(
            f"UPDATE alerts SET status = ?, {column} = ? WHERE id = ? AND status = ?",
            (new_status.value, when, alert_id, current.value),
        )
        await db.commit()
        if cursor.rowcount == 0:
            raise StatusTransitionError(current, new_status)

        cursor = await db.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        row = await cursor.fetchone()
        return AlertRecord.model_validate(dict(row))


# ── alerting rules ──────────────────────────────────────

def _dump_conditions(rule: RuleCreate | RuleUpdate) -> str:
    return json.dumps([c.model_dump(mode="json") for c in rule.conditions or []])


async def insert_rule(data: RuleCreate) -> AlertingRule:
    rule = AlertingRule(**data.model_dump())
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute(
            """INSERT INTO alerting_rules
               (id, name, description, condition, severity, enabled, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                rule.id,
                rule.name,
                rule.description,
                _dump_conditions(rule),
                rule.severity.value,
                int(rule.enabled),
                rule.created_at.isoformat(),
                rule.updated_at.isoformat(),
            ),
        )
        await db.commit()
    return rule


async def get_rule_rows(enabled_only: bool = False) -> list[dict]:
    """Raw rule rows with the condition column still as stored JSON text."""
    query = "SELECT * FROM alerting_rules"
    if enabled_only:
        query += " WHERE enabled = 1"
    query += " ORDER BY created_at DESC"
    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(query)
        rows = await cursor.fetchall()
        return [_row_to_dict(r) for r in rows]


async def list_enabled_rules() -> list[dict]:
    return await get_rule_rows(enabled_only=True)


async def get_rule_by_id(rule_id: str) -> dict | None:
    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute("SELECT * FROM alerting_rules WHERE id = ?", (rule_id,))
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None


async def update_rule(rule_id: str, updates: RuleUpdate) -> dict | None:
    fields = updates.model_dump(exclude_unset=True, exclude={"conditions"})
    assignments: list[str] = []
    params: list = []
    for key, value in fields.items():
        if key == "enabled":
            value = int(value)
        elif key == "severity" and value is not None:
            value = value.value
        assignments.append(f"{key} = ?")
        params.append(value)
    if updates.conditions is not None:
        assignments.append("condition = ?")
        params.append(_dump_conditions(updates))
    assignments.append("updated_at = ?")
    params.append(datetime.now(timezone.utc).isoformat())
    params.append(rule_id)

    async with aiosqlite.connect(settings.db_path) as db:
        cursor = await db.execute(
            f"UPDATE alerting_rules SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        await db.commit()
        if cursor.rowcount == 0:
            return None
    return await get_rule_by_id(rule_id)


async def delete_rule(rule_id: str) -> bool:
    async with aiosqlite.connect(settings.db_path) as db:
        cursor = await db.execute("DELETE FROM alerting_rules WHERE id = ?", (rule_id,))
        await db.commit()
        return cursor.rowcount > 0


async def count_rules() -> int:
    async with aiosqlite.connect(settings.db_path) as db:
        cursor = await db.execute("SELECT COUNT(*) FROM alerting_rules")
        (count,) = await cursor.fetchone()
        return count


# ── helpers ─────────────────────────────────────────────

def _row_to_dict(row: aiosqlite.Row) -> dict:
    d = dict(row)
    if "enabled" in d:
        d["enabled"] = bool(d["enabled"])
    return d
