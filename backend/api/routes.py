from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from backend.db import database as db
from backend.engine import RuleParseError, WebSocketTransport, parse_rule
from backend.models import (
    AlertCreate,
    AlertRecord,
    AlertStatus,
    LogCreate,
    LogEvent,
    RuleCreate,
    RuleUpdate,
    StatusTransitionError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _rule_out(row: dict) -> dict:
    try:
        return parse_rule(row).model_dump(mode="json")
    except RuleParseError as e:
        # surface broken rules instead of hiding them from the list
        return {**row, "error": e.reason}


# ── logs ──────────────────────────────────────────────


@router.get("/api/logs")
async def get_logs(
    level: str | None = None,
    limit: int = 1000,
    offset: int = 0,
) -> list[LogEvent]:
    return await db.get_logs(level=level, limit=limit, offset=offset)


@router.get("/api/logs/recent")
async def get_recent_logs(limit: int = 20) -> list[LogEvent]:
    return await db.get_recent_logs(limit=limit)


@router.post("/api/logs", status_code=201)
async def create_log(data: LogCreate, request: Request) -> LogEvent:
    event = await db.insert_log(data)
    # Detection runs in the background; the log is already stored at this point
    try:
        await request.app.state.pipeline.on_log_created(event)
    except Exception:
        logger.exception("Failed to schedule detection for log %s", event.id)
    return event


# ── alerts ────────────────────────────────────────────


@router.get("/api/alerts")
async def get_alerts(
    severity: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AlertRecord]:
    return await db.get_alerts(severity=severity, status=status, limit=limit, offset=offset)


@router.get("/api/alerts/{alert_id}")
async def get_alert(alert_id: str) -> AlertRecord:
    alert = await db.get_alert_by_id(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.post("/api/alerts", status_code=201)
async def create_alert(data: AlertCreate, request: Request) -> AlertRecord:
    alert = await db.insert_alert(data)
    await request.app.state.registry.broadcast_alert_created(alert)
    return alert


async def _advance(alert_id: str, status: AlertStatus) -> AlertRecord:
    try:
        alert = await db.update_alert_status(alert_id, status)
    except StatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.patch("/api/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str) -> AlertRecord:
    return await _advance(alert_id, AlertStatus.ACKNOWLEDGED)


@router.patch("/api/alerts/{alert_id}/resolve")
async def resolve_alert(alert_id: str) -> AlertRecord:
    return await _advance(alert_id, AlertStatus.RESOLVED)


# ── alerting rules ────────────────────────────────────


@router.get("/api/rules")
async def get_rules() -> list[dict]:
    return [_rule_out(r) for r in await db.get_rule_rows()]


@router.post("/api/rules", status_code=201)
async def create_rule(data: RuleCreate) -> dict:
    rule = await db.insert_rule(data)
    return rule.model_dump(mode="json")


@router.patch("/api/rules/{rule_id}")
async def update_rule(rule_id: str, updates: RuleUpdate) -> dict:
    row = await db.update_rule(rule_id, updates)
    if not row:
        raise HTTPException(status_code=404, detail="Rule not found")
    return _rule_out(row)


@router.delete("/api/rules/{rule_id}")
async def delete_rule(rule_id: str) -> dict:
    if not await db.delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"success": True}


# ── status ────────────────────────────────────────────


@router.get("/api/status")
async def get_status(request: Request) -> dict:
    state = request.app.state
    event_bus = state.event_bus
    return {
        "status": "running",
        "event_bus_running": event_bus.running,
        "pending_events": event_bus.pending,
        "subscribers": state.registry.count,
        "remote_scorer_enabled": getattr(state.scorer, "enabled", False),
        "rule_errors": dict(state.rules_engine.errors),
    }


# ── WebSocket endpoint ────────────────────────────────


@router.websocket("/ws/logs")
async def websocket_logs(websocket: WebSocket) -> None:
    registry = websocket.app.state.registry
    await websocket.accept()
    subscriber_id = registry.register(WebSocketTransport(websocket))
    try:
        while True:
            # Keep connection alive; client can send pings or messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(subscriber_id)
