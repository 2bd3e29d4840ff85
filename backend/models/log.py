from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogCreate(BaseModel):
    """Ingestion payload for a new log entry."""

    level: LogLevel
    source: str = Field(min_length=1, max_length=100)
    ip_address: str | None = Field(default=None, max_length=45)
    event_type: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1)
    metadata: str | None = None


class LogEvent(LogCreate):
    """A stored log entry. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
