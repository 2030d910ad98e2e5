import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from viewcounter import __version__
from viewcounter.api.context import ServiceContext
from viewcounter.api.deps import ApiError
from viewcounter.api.routes import stats, system, tracking
from viewcounter.config import AppConfig, load_config, validate_startup
from viewcounter.core.errors import ViewCounterError
from viewcounter.core.ports.clock import TimePort

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Provision tenant relations before serving; release the pool on shutdown."""
    ctx: ServiceContext = app.state.ctx
    try:
        validate_startup(ctx.config)
        ctx.provision()
    except ViewCounterError as e:
        logger.critical("Startup failed: %s", e)
        ctx.close()
        raise

    logger.info("Serving %d apps", len(ctx.registry.tenant_ids))
    yield
    ctx.close()


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(exc.body, status_code=exc.status_code)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": str(err["loc"][-1]) if err.get("loc") else None,
            "message": err.get("msg", "Invalid value"),
            "code": "invalid_value",
        }
        for err in exc.errors()
    ]
    return JSONResponse({"message": "Validation failed", "errors": errors}, status_code=422)


def create_app(config: AppConfig | None = None, time_port: TimePort | None = None) -> FastAPI:
    """Build the application around one ServiceContext."""
    if config is None:
        config = load_config()

    app = FastAPI(
        title="viewcounter",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.ctx = ServiceContext.create(config, time_port=time_port)

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(system.router, tags=["System"])
    app.include_router(tracking.router, tags=["Tracking"])
    app.include_router(stats.router, tags=["Analytics"])

    # Trackers are embedded on arbitrary sites
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    return app


app = create_app()
