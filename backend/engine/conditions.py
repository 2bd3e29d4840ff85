"""Single-condition matching for alerting rules.

Every check fails closed: a missing field, a bad regex or an operand of the
wrong shape evaluates to False instead of raising.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from backend.models import ConditionOperator, RuleCondition, RuleEvaluationContext

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.warning("Invalid rule pattern: %r", pattern)
        return None


def evaluate(condition: RuleCondition, context: RuleEvaluationContext) -> bool:
    value = context.get(condition.type)
    if not value:
        return False

    op = condition.operator
    operand = condition.value

    if op is ConditionOperator.EQUALS:
        return isinstance(operand, str) and value == operand
    elif op is ConditionOperator.CONTAINS:
        return isinstance(operand, str) and operand in value
    elif op is ConditionOperator.REGEX_MATCH:
        if not isinstance(operand, str):
            return False
        regex = _compile(operand)
        return regex is not None and regex.search(value) is not None
    elif op is ConditionOperator.IN:
        return isinstance(operand, list) and value in operand
    return False
