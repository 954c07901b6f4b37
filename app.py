"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.analytics_cache import AnalyticsCache
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.visitors import RedisVisitorTracker
from jobs.rollup_jobs import RollupJobs
from jobs.scheduler import RollupScheduler
from repositories.mongo_events import MongoEventStore
from repositories.mongo_links import MongoLinkRepository
from repositories.mongo_rollups import MongoRollupRepository
from routes.analytics_routes import router as analytics_router
from routes.export_routes import router as export_router
from routes.health_routes import router as health_router
from routes.job_routes import router as job_router
from services.aggregation_service import AggregationService
from services.alert_service import AlertService
from services.export_service import ExportService
from services.trend_service import TrendService
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.settings = settings

        # Redis is optional; without it every view is computed uncached
        redis_client = await create_redis_client(settings.redis)
        app.state.redis = redis_client

        events = MongoEventStore(db[settings.db.events_collection])
        links = MongoLinkRepository(db[settings.db.links_collection])
        rollups = MongoRollupRepository(db[settings.db.rollups_collection])
        await events.ensure_indexes()
        await rollups.ensure_indexes()

        analytics = settings.analytics
        cache = AnalyticsCache(redis_client)
        aggregation = AggregationService(
            events, links, RedisVisitorTracker(redis_client), cache
        )
        trends = TrendService(events, links, cache, concurrency=analytics.batch_concurrency)

        app.state.aggregation_service = aggregation
        app.state.trend_service = trends
        app.state.alert_service = AlertService(
            events, links, cache, concurrency=analytics.batch_concurrency
        )
        app.state.export_service = ExportService(
            aggregation, events, batch_size=analytics.export_batch_size
        )

        scheduler = None
        if analytics.scheduler_enabled:
            jobs = RollupJobs(events, rollups, links, trends, settings=analytics)
            scheduler = RollupScheduler(jobs, history_size=analytics.run_history_size)
            scheduler.start()
        app.state.scheduler = scheduler

        log.info(
            "app_started",
            env=settings.env,
            redis=redis_client is not None,
            scheduler=scheduler is not None,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if scheduler is not None:
            await scheduler.shutdown()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(analytics_router)
    app.include_router(export_router)
    app.include_router(job_router)

    return app
