from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field


class AlertSeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.INFO: 0,
    AlertSeverity.LOW: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.HIGH: 3,
    AlertSeverity.CRITICAL: 4,
}


def max_severity(a: AlertSeverity, b: AlertSeverity) -> AlertSeverity:
    return a if SEVERITY_RANK[a] >= SEVERITY_RANK[b] else b


class AlertStatus(StrEnum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


_STATUS_ORDER: dict[AlertStatus, int] = {
    AlertStatus.ACTIVE: 0,
    AlertStatus.ACKNOWLEDGED: 1,
    AlertStatus.RESOLVED: 2,
}


class StatusTransitionError(ValueError):
    """Raised when an alert status would move backwards or stay put."""

    def __init__(self, current: AlertStatus, new: AlertStatus) -> None:
        super().__init__(f"Cannot move alert from {current.value} to {new.value}")
        self.current = current
        self.new = new


def can_transition(current: AlertStatus, new: AlertStatus) -> bool:
    return _STATUS_ORDER[new] > _STATUS_ORDER[current]


class AlertRequest(BaseModel):
    """Detector output describing an alert that should be created."""

    severity: AlertSeverity
    title: str
    description: str
    source: str
    ip_address: str | None = None


class AlertCreate(AlertRequest):
    """Manual alert payload accepted by the API."""

    title: str = Field(min_length=1, max_length=200)
    source: str = Field(min_length=1, max_length=100)


class AlertRecord(BaseModel):
    """Persisted alert with its lifecycle state."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    severity: AlertSeverity
    title: str
    description: str
    source: str
    ip_address: str | None = None
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
