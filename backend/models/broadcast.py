from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class BroadcastType(StrEnum):
    LOG_CREATED = "log_created"
    ALERT_CREATED = "alert_created"


class BroadcastMessage(BaseModel):
    """Wire envelope pushed to every live subscriber."""

    type: BroadcastType
    data: dict[str, Any]
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def encode(self) -> bytes:
        return self.model_dump_json().encode()
