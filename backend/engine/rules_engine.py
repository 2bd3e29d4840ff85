from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from backend.engine.conditions import evaluate
from backend.models import (
    AlertingRule,
    AlertRequest,
    RuleCondition,
    RuleCreate,
    RuleEvaluationContext,
)

logger = logging.getLogger(__name__)


class RuleParseError(ValueError):
    """Stored rule data could not be turned into an AlertingRule."""

    def __init__(self, rule_id: str, reason: str) -> None:
        super().__init__(f"Rule {rule_id}: {reason}")
        self.rule_id = rule_id
        self.reason = reason


def parse_rule(row: dict[str, Any]) -> AlertingRule:
    """Build a validated rule from a stored row (``condition`` is JSON text)."""
    rule_id = str(row.get("id", "?"))
    raw = row.get("condition")
    try:
        payload = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError as e:
        raise RuleParseError(rule_id, f"condition is not valid JSON ({e.msg})") from e
    if not isinstance(payload, list):
        raise RuleParseError(rule_id, "condition must be a JSON list")

    fields = {k: v for k, v in row.items() if k != "condition"}
    try:
        conditions = [RuleCondition.model_validate(c) for c in payload]
        return AlertingRule(**fields, conditions=conditions)
    except ValidationError as e:
        raise RuleParseError(rule_id, f"{e.error_count()} invalid field(s)") from e


def load_seed_rules(path: str | Path) -> list[RuleCreate]:
    """Read rule definitions from a YAML file with a top-level ``rules`` list."""
    path = Path(path)
    if not path.exists():
        return []
    raw = yaml.safe_load(path.read_text())
    entries = raw.get("rules", []) if isinstance(raw, dict) else raw or []
    rules: list[RuleCreate] = []
    for entry in entries:
        try:
            rules.append(RuleCreate(**entry))
        except (TypeError, ValidationError):
            name = entry.get("name", "?") if isinstance(entry, dict) else entry
            logger.warning("Skipping invalid seed rule: %s", name)
    return rules


def rule_matches(rule: AlertingRule, context: RuleEvaluationContext) -> bool:
    # an empty condition list would be vacuously true; treat it as never matching
    if not rule.enabled or not rule.conditions:
        return False
    return all(evaluate(cond, context) for cond in rule.conditions)


def evaluate_rules(
    rules: Iterable[AlertingRule],
    context: RuleEvaluationContext,
) -> list[AlertRequest]:
    """Return one alert request per matching rule. Every rule is checked."""
    requests: list[AlertRequest] = []
    for rule in rules:
        try:
            matched = rule_matches(rule, context)
        except Exception:
            logger.exception("Error evaluating rule %s", rule.id)
            continue
        if matched:
            requests.append(
                AlertRequest(
                    severity=rule.severity,
                    title=rule.name,
                    description=f"Custom rule triggered: {rule.description or rule.name}",
                    source=context.source,
                    ip_address=context.ip,
                )
            )
    return requests


class RulesEngine:
    """Turns stored rule rows into validated rules and evaluates them."""

    def __init__(self) -> None:
        self.errors: dict[str, str] = {}

    def load_rules(self, rows: Iterable[dict[str, Any]]) -> list[AlertingRule]:
        rules: list[AlertingRule] = []
        errors: dict[str, str] = {}
        for row in rows:
            try:
                rules.append(parse_rule(row))
            except RuleParseError as e:
                logger.warning("Skipping invalid rule: %s", e)
                errors[e.rule_id] = e.reason
        self.errors = errors
        return rules

    def evaluate(
        self,
        rules: Iterable[AlertingRule],
        context: RuleEvaluationContext,
    ) -> list[AlertRequest]:
        return evaluate_rules(rules, context)
