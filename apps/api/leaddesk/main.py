from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from leaddesk.api.errors import error_response, service_error_response
from leaddesk.api.routes import router as api_router
from leaddesk.core.config import get_settings
from leaddesk.core.events import InternalEvent, event_bus
from leaddesk.logging import configure_logging
from leaddesk.middleware.correlation_id import CorrelationIdMiddleware
from leaddesk.middleware.rate_limit import MutationRateLimitMiddleware
from leaddesk.middleware.request_logging import RequestLoggingMiddleware
from leaddesk.otel import get_fastapi_server_request_hook, setup_otel
from leaddesk.platform.security.errors import UnauthenticatedError
from leaddesk.reporting.dashboard.cache import dashboard_metrics_cache


configure_logging()
logger = logging.getLogger("leaddesk.lifecycle")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def register_subscriptions() -> None:
    event_bus.subscribe("system.started", _on_system_started)
    dashboard_metrics_cache.subscribe(event_bus)


@asynccontextmanager
async def lifespan(app: FastAPI):
    register_subscriptions()
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(MutationRateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

# Subscriptions are idempotent; registering at import keeps the cache coherent without a lifespan run.
register_subscriptions()


@app.exception_handler(UnauthenticatedError)
async def unauthenticated_handler(request: Request, exc: UnauthenticatedError):
    return service_error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Request validation failed",
        details=jsonable_encoder([{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]),
    )


if settings.otel_enabled:
    setup_otel("leaddesk-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
