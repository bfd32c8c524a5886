"""FastAPI application for specsynth.

Logging: Uses structured JSON logging.
Set LOG_FORMAT=pretty for development-friendly output.
"""

from contextlib import asynccontextmanager

# Configure structured logging BEFORE importing anything else
from specsynth.utils.logging import configure_logging, get_logger, log  # noqa: E402

configure_logging()

MODULE = "api"
logger = get_logger()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from specsynth.api.routes.health import router as health_router  # noqa: E402
from specsynth.api.routes.ai_synth import router as ai_synth_router  # noqa: E402
from specsynth.db.session import engine  # noqa: E402
from specsynth.db.models import Base  # noqa: E402
from specsynth.errors import (  # noqa: E402
    NoSourcesError,
    ReferenceDataError,
    SpecSynthError,
    SynthesisAlreadyExistsError,
    SynthesisNotFoundError,
)
from specsynth.llm.client import LLMConfigurationError, LLMGatewayError  # noqa: E402
from specsynth.llm.invoker import InvalidModelJSONError  # noqa: E402
from specsynth.llm.validators import SynthesisValidationError  # noqa: E402

# Most specific first; status_for() takes the first isinstance match.
ERROR_STATUS = (
    (SynthesisAlreadyExistsError, 409),
    (SynthesisNotFoundError, 404),
    (NoSourcesError, 404),
    (ReferenceDataError, 500),
    (LLMConfigurationError, 500),
    (LLMGatewayError, 502),
    (InvalidModelJSONError, 502),
    (SynthesisValidationError, 502),
)


def status_for(exc: SpecSynthError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown."""
    # Create DB tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info(logger, MODULE, "db_ready", "Database tables ready")

    yield

    await engine.dispose()
    log.info(logger, MODULE, "shutdown", "Application shutdown complete")


app = FastAPI(
    title="specsynth",
    description="AI synthesis of user product specifications",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(SpecSynthError)
async def handle_service_error(request: Request, exc: SpecSynthError):
    status = status_for(exc)
    log_fn = log.error if status >= 500 else log.info
    log_fn(logger, MODULE, "request_failed", "Request failed",
           status=status, error_type=type(exc).__name__, detail=str(exc),
           path=request.url.path, shopify_handle=exc.shopify_handle,
           operation=exc.operation)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


app.include_router(health_router)
app.include_router(ai_synth_router, prefix="/ai-synth", tags=["ai-synth"])
