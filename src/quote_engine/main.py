"""
Quote Workflow Engine Service

A FastAPI service that aggregates auto-insurance quotes with:
- Multi-step provider workflows driven by a browser automation agent
- Per-step retries with linear backoff and session data carried between steps
- Concurrent fan-out across providers with live progress snapshots
- Server-sent event and WebSocket streaming of run progress
- Redis-backed run registry with an in-memory fallback
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from . import __version__
from .api.routes import router, set_dependencies
from .api.websocket import websocket_endpoint
from .config import config
from .orchestration.orchestrator import WorkflowOrchestrator
from .persistence.registry import RunRegistry, create_run_registry
from .templates.catalog import load_provider_catalog
from .tools.automation_client import AutomationClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Global resources
registry: Optional[RunRegistry] = None
automation_client: Optional[AutomationClient] = None
orchestrator: Optional[WorkflowOrchestrator] = None


SAMPLE_USER_DATA = {
    "firstName": "Crystal",
    "lastName": "Mcpherson",
    "dateOfBirth": "10/06/1987",
    "gender": "Female",
    "maritalStatus": "Single",
    "email": "crystal.mcpherson@example.com",
    "phone": "3372548478",
    "licenseNumber": "3726454522",
    "licenseState": "TX",
    "vin": "2C3CDZAG2GH967639",
    "year": 2016,
    "make": "Dodge",
    "model": "Challenger",
    "employmentStatus": "EMPLOYED",
    "educationLevel": "BACHELORS",
    "policyStartDate": "2025-09-25",
    "mailingAddress": "1304 E Copeland Rd",
    "city": "Arlington",
    "state": "TX",
    "zipcode": "76011",
    "isMailingSameAsGaraging": True,
}


def setup_tracing():
    """Export spans over OTLP."""
    resource = Resource.create({"service.name": "quote-workflow-engine"})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_endpoint))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global registry, automation_client, orchestrator

    if config.otel_enabled:
        setup_tracing()

    registry = await create_run_registry(config.redis_url, default_ttl=config.run_ttl_seconds)

    catalog = load_provider_catalog(config.provider_catalog_path)

    automation_client = AutomationClient(
        base_url=config.automation_api_url,
        run_path=config.automation_run_path,
        timeout=config.automation_timeout_seconds,
    )

    orchestrator = WorkflowOrchestrator(
        automation_client,
        catalog,
        retry_base_delay=config.retry_base_delay_seconds,
        browser_profile=config.automation_browser_profile,
        retry_semantic_failures=config.retry_semantic_failures,
        retention_seconds=config.workflow_retention_seconds,
    )
    set_dependencies(registry, orchestrator, api_key=config.automation_api_key)

    if not config.automation_api_key:
        logger.warning("AUTOMATION_API_KEY is not set; quote runs will be rejected")

    logger.info(f"Quote workflow engine started with {len(catalog)} providers")
    yield

    # Cleanup
    await orchestrator.shutdown()
    await automation_client.close()
    await registry.close()

    logger.info("Quote workflow engine stopped")


app = FastAPI(
    title="Quote Workflow Engine",
    description="Multi-step browser automation workflows for auto-insurance quote aggregation",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument with OpenTelemetry
FastAPIInstrumentor.instrument_app(app)

# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "quote-workflow-engine",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/")
async def service_info():
    """Service description and endpoint index."""
    return {
        "name": "Quote Workflow Engine",
        "description": "Insurance quote aggregator using browser automation agents",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "sampleData": "GET /sample-data",
            "providers": "GET /api/v1/providers",
            "createQuote": "POST /api/v1/quotes",
            "getQuote": "GET /api/v1/quotes/{runId}",
            "streamQuote": "GET /api/v1/quotes/{runId}/stream",
            "runWorkflows": "GET /api/v1/quotes/{runId}/workflows",
            "workflow": "GET /api/v1/workflows/{workflowId}",
            "websocket": "WS /ws/quotes/{runId}",
        },
    }


@app.get("/sample-data")
async def sample_data():
    """Example request body for POST /api/v1/quotes."""
    return SAMPLE_USER_DATA


@app.websocket("/ws/quotes/{run_id}")
async def quote_websocket(websocket: WebSocket, run_id: str):
    """WebSocket endpoint for quote run streaming."""
    await websocket_endpoint(websocket, run_id)


def run():
    """Console entry point."""
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
