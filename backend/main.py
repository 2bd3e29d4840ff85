from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api.routes import router
from backend.config import settings
from backend.db import database as db
from backend.engine import (
    DetectionPipeline,
    EventBus,
    HeuristicClassifier,
    RemoteScorer,
    RulesEngine,
    SubscriberRegistry,
    load_seed_rules,
)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def _seed_rules() -> None:
    if await db.count_rules():
        return
    seeds = load_seed_rules(settings.rules_file)
    for rule in seeds:
        await db.insert_rule(rule)
    if seeds:
        logger.info("Seeded %d alerting rule(s) from %s", len(seeds), settings.rules_file)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ───────────────────────────────────────
    await db.init_db()
    await _seed_rules()

    event_bus = EventBus(maxsize=settings.event_queue_size, workers=settings.detection_workers)
    registry = SubscriberRegistry(send_timeout=settings.subscriber_send_timeout)
    scorer = RemoteScorer(
        base_url=settings.scorer_base_url,
        api_key=settings.scorer_api_key,
        model=settings.scorer_model,
        timeout=settings.scorer_timeout,
    )
    classifier = HeuristicClassifier(
        scorer=scorer,
        timeout=settings.scorer_timeout,
        confidence_threshold=settings.anomaly_confidence_threshold,
    )
    rules_engine = RulesEngine()
    pipeline = DetectionPipeline(
        classifier=classifier,
        rules_engine=rules_engine,
        registry=registry,
        event_bus=event_bus,
    )
    await event_bus.start()

    # Store on app.state for route access
    app.state.event_bus = event_bus
    app.state.registry = registry
    app.state.scorer = scorer
    app.state.rules_engine = rules_engine
    app.state.pipeline = pipeline

    logger.info("%s started", settings.app_name)

    yield

    # ── shutdown ──────────────────────────────────────
    await event_bus.stop()
    await registry.close_all()
    await scorer.aclose()
    logger.info("%s shut down", settings.app_name)


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


def run() -> None:
    import uvicorn

    uvicorn.run("backend.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
