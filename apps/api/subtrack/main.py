from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from subtrack.api.routes import router as api_router
from subtrack.core.config import get_settings
from subtrack.logging import configure_logging
from subtrack.middleware.correlation_id import CorrelationIdMiddleware
from subtrack.middleware.request_logging import RequestLoggingMiddleware
from subtrack.otel import setup_otel


configure_logging()
logger = logging.getLogger("subtrack.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("system.started")
    yield
    logger.info("system.stopped")


app = FastAPI(title="Subtrack API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel(True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app)
