"""
FastAPI host for the Civic Triage ingestion core
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from civic_triage.config import get_settings
from civic_triage.database import db_manager, init_database
from civic_triage.logging_config import logger, setup_logging
from civic_triage.services import OpenAIClassifier, ReportEnricher
from civic_triage.services.complaint_store import SQLComplaintStore
from civic_triage.services.ingestion_pipeline import IngestionPipeline
from civic_triage.services.scheduler import RescoreScheduler
from civic_triage.services.trend_provider import HttpTrendSource, TrendWeightCache


def build_enricher() -> ReportEnricher:
    """Report enricher with the OpenAI classifier when an API key is configured"""
    if settings.OPENAI_API_KEY:
        logger.info(f"Report classification enabled with model {settings.CLASSIFIER_MODEL}")
        return ReportEnricher(classifier=OpenAIClassifier(api_key=settings.OPENAI_API_KEY))

    logger.info("OPENAI_API_KEY not set, reports are ingested without classification")
    return ReportEnricher()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging()
    logger.info("Civic Triage starting up")

    await init_database(db_manager)

    trend_cache = TrendWeightCache()
    trend_source = HttpTrendSource() if settings.TREND_SERVICE_URL else None
    if trend_source is not None:
        await trend_cache.refresh(trend_source)

    pipeline = IngestionPipeline.from_settings(SQLComplaintStore(db_manager), trend_provider=trend_cache)
    await pipeline.warm()

    scheduler = RescoreScheduler(
        pipeline,
        interval_seconds=settings.RESCORE_INTERVAL_SECONDS,
        trend_cache=trend_cache,
        trend_source=trend_source
    )
    scheduler.start()

    app.state.enricher = build_enricher()
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler

    yield

    # Shutdown
    await scheduler.stop()
    await db_manager.close()
    logger.info("Civic Triage shutting down")


# Initialize FastAPI app
app = FastAPI(
    title="Civic Triage",
    description="Duplicate detection and prioritization for civic complaints",
    version="1.0.0",
    lifespan=lifespan
)

# Get settings
settings = get_settings()


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    pipeline = getattr(app.state, "pipeline", None)
    return {
        "status": "healthy",
        "service": "civic-triage",
        "open_complaints": len(pipeline.registry) if pipeline is not None else 0
    }
