import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .routes.intake import router as intake_router
from .routes.invoices import router as invoices_router
from .routes.status import router as status_router
from .routes.workshop import router as workshop_router
from .services.errors import WorkshopError

logger = structlog.get_logger(__name__)


async def workshop_error_handler(request: Request, exc: WorkshopError):
    logger.warning(
        "workshop_error",
        code=exc.code,
        error=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, **exc.extra},
    )


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(WorkshopError, workshop_error_handler)

    # Routers
    app.include_router(status_router)
    app.include_router(intake_router)
    app.include_router(workshop_router)
    app.include_router(invoices_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("creating_tables", count=len(missing))
                Base.metadata.create_all(bind=engine)

    return app


app = create_app()
