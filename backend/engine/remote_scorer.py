from __future__ import annotations

import json
import logging
from typing import Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a cybersecurity expert analyzing network security logs.
Determine if the given log entry represents an anomalous or suspicious activity.
Consider patterns like:
- Unusual IP addresses or geographical locations
- Abnormal access patterns or timing
- Suspicious authentication attempts
- Unusual data transfers
- Port scanning or network reconnaissance
- Privilege escalation attempts
- Data exfiltration indicators

Respond with JSON in this format: { "isAnomalous": boolean, "confidence": number (0-1), "analysis": "brief explanation" }"""


class ScoreResult(BaseModel):
    is_anomalous: bool = Field(default=False, alias="isAnomalous")
    confidence: float = 0.0
    analysis: str = "No analysis available"

    model_config = {"populate_by_name": True}

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: object) -> float:
        try:
            return max(0.0, min(1.0, float(v or 0)))
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def neutral(cls, analysis: str = "AI analysis unavailable") -> ScoreResult:
        return cls(is_anomalous=False, confidence=0.0, analysis=analysis)


class Scorer(Protocol):
    async def score(self, message: str, context: str) -> ScoreResult: ...


class RemoteScorer:
    """Asks an OpenAI-compatible chat endpoint whether a log line looks anomalous.

    Never raises: a missing key, a timeout, an HTTP error or an unparseable reply
    all come back as a neutral result.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.enabled = bool(api_key)
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"} if api_key else {},
            timeout=timeout,
        )
        if not self.enabled:
            logger.warning("Remote scorer API key is not set - AI anomaly detection is disabled")

    async def score(self, message: str, context: str) -> ScoreResult:
        if not self.enabled:
            return ScoreResult.neutral()

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Log Message: {message}\n\nContext: {context}"},
            ],
            "response_format": {"type": "json_object"},
            "max_completion_tokens": 500,
        }
        try:
            resp = await self._client.post("/chat/completions", json=body)
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"] or "{}"
            return ScoreResult.model_validate(json.loads(content))
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            logger.error("Remote scorer error: %s", e)
            return ScoreResult.neutral("AI analysis failed")

    async def aclose(self) -> None:
        await self._client.aclose()
