import tomllib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fieldsync.bootstrap import build_services
from fieldsync.config import get_app_settings
from fieldsync.db.database import close_db, get_async_session_local
from fieldsync.integrations.servicem8.config import get_servicem8_settings
from fieldsync.integrations.servicem8.router import router as servicem8_router
from fieldsync.reconciliation.config import get_reconciliation_settings
from fieldsync.reconciliation.router import router as reconciliation_router
from fieldsync.schemas import ErrorResponse
from fieldsync.sync.router import router as sync_router
from fieldsync.utils.logger import logger
from fieldsync.webhooks.config import get_webhook_settings
from fieldsync.webhooks.router import router as webhooks_router


def get_version():
    """Get version from pyproject.toml"""
    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
    with open(pyproject_path, "rb") as f:
        data = tomllib.load(f)
    return data["project"]["version"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    services = build_services(
        session_factory=get_async_session_local(),
        servicem8_settings=get_servicem8_settings(),
        webhook_settings=get_webhook_settings(),
        reconciliation_settings=get_reconciliation_settings(),
    )
    app.state.services = services
    services.scheduler.start()
    logger.info("Fieldsync API started", environment=get_app_settings().environment.value)
    try:
        yield
    finally:
        await services.aclose()
        await close_db()
        logger.info("Fieldsync API stopped")


app = FastAPI(
    title="Fieldsync API",
    description="ServiceM8 sync, webhook processing and reconciliation",
    version=get_version(),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_app_settings().client_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as ``{success: false, error, message}``."""
    body = ErrorResponse(error=str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=getattr(exc, "headers", None),
    )


app.include_router(servicem8_router, prefix="/api")
app.include_router(sync_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(reconciliation_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {"status": "ok", "message": "Fieldsync API is running"}


@app.get("/healthcheck")
async def healthcheck():
    """Health check endpoint."""
    return {"status": "ok", "message": "Fieldsync API is running"}
