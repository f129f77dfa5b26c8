# FastAPI Application Entry Point
from contextlib import asynccontextmanager
from fastapi import FastAPI

# Configuration and Observability
from kyc_review_service.app.config import settings
from kyc_review_service.app.observability import setup_opentelemetry, MetricsRecorder, logger

# Initialize OpenTelemetry
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

# Import instrumentors after OTel SDK is initialized
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor

# Database connection and stores
from kyc_review_service.infrastructure.database.connection import connect_to_mongo, close_mongo_connection, get_database
from kyc_review_service.infrastructure.database.document_store import MongoDocumentStore
from kyc_review_service.infrastructure.database.audit_log_store import MongoAuditLogStore
# Kafka Producer
from kyc_review_service.infrastructure.kafka.producer import KafkaProducerService

# Review engine
from kyc_review_service.app.service.audit import AuditPipeline
from kyc_review_service.app.service.errors import ErrorClassifier
from kyc_review_service.app.service.events.publisher import EventPublisher
from kyc_review_service.app.service.retry import RetryPolicy
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator

# API Routers
from kyc_review_service.app.api.v1.endpoints import health as health_router
from kyc_review_service.app.api.v1.endpoints import reviews as reviews_router


def build_review_orchestrator(document_store, audit_log_store, producer, metrics: MetricsRecorder) -> ReviewOrchestrator:
    classifier = ErrorClassifier()
    return ReviewOrchestrator(
        document_store=document_store,
        retry_policy=RetryPolicy.from_settings(classifier=classifier),
        audit=AuditPipeline(audit_log_store, metrics),
        events=EventPublisher(producer, metrics, topic=settings.KYC_EVENTS_TOPIC),
        metrics=metrics,
        classifier=classifier,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("FastAPI application startup...")
    PymongoInstrumentor().instrument()
    logger.info("PyMongo instrumentation complete.")

    mongo_client = connect_to_mongo()
    db = get_database(mongo_client)
    document_store = MongoDocumentStore(db)
    document_store.ensure_indexes()
    producer = KafkaProducerService.from_settings()

    app.state.mongo_client = mongo_client
    app.state.kafka_producer = producer
    app.state.document_store = document_store
    app.state.review_orchestrator = build_review_orchestrator(
        document_store, MongoAuditLogStore(db), producer, MetricsRecorder.from_settings()
    )
    logger.info("Review orchestrator initialized.")
    try:
        yield
    finally:
        logger.info("FastAPI application shutdown...")
        producer.flush()
        close_mongo_connection(mongo_client)


# --- FastAPI Application Instance ---
app = FastAPI(
    title="KYC Review Service",
    description="Admin review and status transitions for KYC documents.",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

# Include API Routers
app.include_router(health_router.router, prefix="/api/v1/admin")
app.include_router(reviews_router.router, prefix="/api/v1")

logger.info("API routers included. Application setup complete.")

# To run: uvicorn kyc_review_service.app.main:app --port 8000
