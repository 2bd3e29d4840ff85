from __future__ import annotations

import asyncio
import logging

from backend.db import database as db
from backend.engine.classifier import HeuristicClassifier
from backend.engine.event_bus import EventBus
from backend.engine.fanout import SubscriberRegistry
from backend.engine.rules_engine import RulesEngine
from backend.models import (
    AlertRecord,
    AlertRequest,
    LogEvent,
    RuleEvaluationContext,
    max_severity,
)

logger = logging.getLogger(__name__)


class DetectionPipeline:
    """Glues classifier + rules engine + alert store + fanout. Subscribes to EventBus."""

    def __init__(
        self,
        classifier: HeuristicClassifier,
        rules_engine: RulesEngine,
        registry: SubscriberRegistry,
        event_bus: EventBus | None = None,
    ) -> None:
        self.classifier = classifier
        self.rules_engine = rules_engine
        self.registry = registry
        self.event_bus = event_bus
        if event_bus is not None:
            event_bus.subscribe(self.handle_event)

    async def on_log_created(self, event: LogEvent) -> bool:
        """Hand a freshly stored log to the background bus and return.

        Never waits on detection. When the bus queue is full the detection
        pass for this log is skipped and False is returned.
        """
        if self.event_bus is None:
            raise RuntimeError("DetectionPipeline has no event bus to schedule on")
        return await self.event_bus.publish(event)

    async def handle_event(self, event: LogEvent) -> list[AlertRecord]:
        """EventBus subscriber: broadcast the log, detect, persist, broadcast alerts."""
        await self.registry.broadcast_log_created(event)

        heuristic, rule_requests = await asyncio.gather(
            self.classifier.classify(event),
            self._evaluate_rules(event),
            return_exceptions=True,
        )

        requests: list[AlertRequest] = []
        if isinstance(heuristic, BaseException):
            logger.error("Heuristic classification failed for log %s: %r", event.id, heuristic)
        elif heuristic is not None:
            requests.append(heuristic)
        if isinstance(rule_requests, BaseException):
            logger.error("Rule evaluation failed for log %s: %r", event.id, rule_requests)
        else:
            requests.extend(rule_requests)

        created: list[AlertRecord] = []
        for request in self._merge(requests):
            try:
                alert = await db.insert_alert(request)
            except Exception:
                logger.exception("Failed to persist alert %r for log %s", request.title, event.id)
                continue
            created.append(alert)
            await self.registry.broadcast_alert_created(alert)

        if created:
            logger.info("Log %s raised %d alert(s)", event.id, len(created))
        return created

    async def _evaluate_rules(self, event: LogEvent) -> list[AlertRequest]:
        try:
            rows = await db.list_enabled_rules()
        except Exception:
            logger.exception("Failed to load alerting rules for log %s", event.id)
            return []
        rules = self.rules_engine.load_rules(rows)
        context = RuleEvaluationContext.from_log(event)
        return self.rules_engine.evaluate(rules, context)

    @staticmethod
    def _merge(requests: list[AlertRequest]) -> list[AlertRequest]:
        """Collapse requests that would create the same alert, keeping the highest severity."""
        merged: dict[tuple, AlertRequest] = {}
        for req in requests:
            key = (req.title, req.description, req.source, req.ip_address)
            existing = merged.get(key)
            if existing is None:
                merged[key] = req
            else:
                merged[key] = existing.model_copy(
                    update={"severity": max_severity(existing.severity, req.severity)}
                )
        return list(merged.values())
