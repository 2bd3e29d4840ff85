from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backend.models.alert import AlertSeverity
from backend.models.log import LogEvent


class ConditionField(StrEnum):
    ORIGIN_ADDRESS = "ip"
    EVENT_TYPE = "eventType"
    SEVERITY = "severity"
    MESSAGE_PATTERN = "pattern"
    SOURCE = "source"


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    CONTAINS = "contains"
    REGEX_MATCH = "matches"
    IN = "in"


class RuleCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ConditionField
    operator: ConditionOperator
    value: str | list[str]


class RuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    conditions: list[RuleCondition] = Field(default_factory=list)
    severity: AlertSeverity
    enabled: bool = True


class RuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    conditions: list[RuleCondition] | None = None
    severity: AlertSeverity | None = None
    enabled: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data: object) -> object:
        # omitted means "leave unchanged"; only description may be cleared
        if isinstance(data, dict):
            nulls = [
                k for k in ("name", "conditions", "severity", "enabled")
                if k in data and data[k] is None
            ]
            if nulls:
                raise ValueError(f"{', '.join(nulls)} cannot be null")
        return data


class AlertingRule(RuleCreate):
    """User-defined detection rule; all conditions must match."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class RuleEvaluationContext(BaseModel):
    """Flattened view of a log event used for condition matching."""

    model_config = ConfigDict(frozen=True)

    ip: str | None = None
    event_type: str
    severity: str
    message: str
    source: str

    @classmethod
    def from_log(cls, event: LogEvent) -> RuleEvaluationContext:
        return cls(
            ip=event.ip_address or None,
            event_type=event.event_type,
            severity=event.level.value,
            message=event.message,
            source=event.source,
        )

    def get(self, field: ConditionField) -> str | None:
        if field is ConditionField.ORIGIN_ADDRESS:
            return self.ip
        if field is ConditionField.EVENT_TYPE:
            return self.event_type
        if field is ConditionField.SEVERITY:
            return self.severity
        if field is ConditionField.MESSAGE_PATTERN:
            return self.message
        if field is ConditionField.SOURCE:
            return self.source
        return None
