from __future__ import annotations

import asyncio
import logging
import re
from typing import NamedTuple

from backend.engine.remote_scorer import ScoreResult, Scorer
from backend.models import AlertRequest, AlertSeverity, LogEvent, LogLevel

logger = logging.getLogger(__name__)


class Detector(NamedTuple):
    name: str
    pattern: re.Pattern[str]
    severity: AlertSeverity


def _detector(name: str, pattern: str, severity: AlertSeverity) -> Detector:
    return Detector(name, re.compile(pattern, re.IGNORECASE), severity)


# Checked in order; the first match decides the severity.
DETECTORS: tuple[Detector, ...] = (
    _detector("auth_failure", r"failed.*login|authentication.*failed", AlertSeverity.HIGH),
    _detector("reconnaissance", r"port.*scan|scanning|reconnaissance", AlertSeverity.HIGH),
    _detector("flooding", r"ddos|flood|syn.*attack", AlertSeverity.CRITICAL),
    _detector("privilege_escalation", r"privilege.*escalation|sudo|root.*access", AlertSeverity.CRITICAL),
    _detector(
        "data_exfiltration",
        r"data.*exfil|data.*transfer.*unusual|suspicious.*download",
        AlertSeverity.CRITICAL,
    ),
    _detector("injection", r"sql.*injection|injection|xss|cross.*site", AlertSeverity.HIGH),
    _detector("firewall_denial", r"firewall.*block|blocked|denied", AlertSeverity.MEDIUM),
)

SCORED_LEVELS = frozenset({LogLevel.ERROR, LogLevel.CRITICAL})


class HeuristicClassifier:
    """Built-in detection: fixed pattern table plus the remote scorer."""

    def __init__(
        self,
        scorer: Scorer | None = None,
        timeout: float = 10.0,
        confidence_threshold: float = 0.6,
        detectors: tuple[Detector, ...] = DETECTORS,
    ) -> None:
        self.scorer = scorer
        self.timeout = timeout
        self.confidence_threshold = confidence_threshold
        self.detectors = detectors

    def match_pattern(self, event: LogEvent) -> Detector | None:
        for detector in self.detectors:
            if detector.pattern.search(event.message) or detector.pattern.search(event.event_type):
                return detector
        return None

    async def classify(self, event: LogEvent) -> AlertRequest | None:
        detector = self.match_pattern(event)
        severity = detector.severity if detector else None

        if event.level in SCORED_LEVELS:
            result = await self._score(event)
            if result.is_anomalous and result.confidence > self.confidence_threshold:
                logger.info(
                    "Remote scorer flagged log %s (confidence=%.2f)", event.id, result.confidence
                )
                severity = AlertSeverity.CRITICAL

        if severity is None:
            return None
        return AlertRequest(
            severity=severity,
            title=f"Anomaly Detected: {event.event_type}",
            description=event.message,
            source=event.source,
            ip_address=event.ip_address,
        )

    async def _score(self, event: LogEvent) -> ScoreResult:
        if self.scorer is None:
            return ScoreResult.neutral()
        context = f"Source: {event.source}, Type: {event.event_type}, IP: {event.ip_address or 'N/A'}"
        try:
            return await asyncio.wait_for(
                self.scorer.score(event.message, context), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Remote scorer timed out for log %s", event.id)
        except Exception:
            logger.exception("Remote scorer failed for log %s", event.id)
        return ScoreResult.neutral()
