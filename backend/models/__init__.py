from .log import LogCreate, LogEvent, LogLevel
from .alert import (
    AlertCreate,
    AlertRecord,
    AlertRequest,
    AlertSeverity,
    AlertStatus,
    SEVERITY_RANK,
    StatusTransitionError,
    can_transition,
    max_severity,
)
from .rule import (
    AlertingRule,
    ConditionField,
    ConditionOperator,
    RuleCondition,
    RuleCreate,
    RuleEvaluationContext,
    RuleUpdate,
)
from .broadcast import BroadcastMessage, BroadcastType

__all__ = [
    "LogCreate",
    "LogEvent",
    "LogLevel",
    "AlertCreate",
    "AlertRecord",
    "AlertRequest",
    "AlertSeverity",
    "AlertStatus",
    "SEVERITY_RANK",
    "StatusTransitionError",
    "can_transition",
    "max_severity",
    "AlertingRule",
    "ConditionField",
    "ConditionOperator",
    "RuleCondition",
    "RuleCreate",
    "RuleEvaluationContext",
    "RuleUpdate",
    "BroadcastMessage",
    "BroadcastType",
]
