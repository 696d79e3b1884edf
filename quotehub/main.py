import os

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine
from .errors import MalformedDecimal, QuoteHubError
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  (registers tables on Base.metadata)
from .schemas.quotes import error_fields
from .routes.customers import router as customers_router
from .routes.dashboard import router as dashboard_router
from .routes.materials import router as materials_router
from .routes.products import router as products_router
from .routes.quotes import router as quotes_router
from .routes.tasks import router as tasks_router


logger = structlog.get_logger(__name__)


async def quotehub_error_handler(request: Request, exc: QuoteHubError):
    if isinstance(exc, MalformedDecimal):
        logger.error("data_integrity_fault", path=request.url.path, value=repr(exc.value))
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = error_fields(exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": "Invalid input", "fields": sorted(set(fields))},
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

    # Domain errors
    app.add_exception_handler(QuoteHubError, quotehub_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(quotes_router)
    app.include_router(tasks_router)
    app.include_router(materials_router)
    app.include_router(products_router)
    app.include_router(customers_router)
    app.include_router(dashboard_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.on_event("startup")
    def on_startup():
        if settings.auto_create_db:
            if settings.database_url.startswith("sqlite:///./"):
                os.makedirs("var", exist_ok=True)
            Base.metadata.create_all(bind=engine)
        logger.info("startup", app=settings.app_name, environment=settings.environment)

    return app


app = create_app()
