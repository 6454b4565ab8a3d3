"""FastAPI application entrypoint. No business logic; only wiring, middleware and the import watcher lifecycle."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as v1_router
from app.core.config import settings
from app.core.database import engine
from app.core.logging import configure_logging
from app.models import Base
from app.services.importer import SpreadsheetImporter
from app.services.storage import build_storage_backend
from app.services.watcher import ImportWatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables when configured, select the record store and run the import watcher."""
    configure_logging(settings.LOG_LEVEL)
    if settings.AUTO_CREATE_DB:
        Base.metadata.create_all(bind=engine)

    backend = build_storage_backend(settings)
    backend.check()
    importer = SpreadsheetImporter(
        backend, settings.IMPORT_DIR, file_timeout_sec=settings.IMPORT_FILE_TIMEOUT_SEC
    )
    watcher = ImportWatcher(
        importer,
        interval_sec=settings.IMPORT_POLL_INTERVAL_SEC,
        debounce_sec=settings.IMPORT_DEBOUNCE_SEC,
    )
    app.state.import_watcher = watcher
    if settings.IMPORT_ENABLED:
        watcher.start()
    else:
        logger.info("Import watcher disabled (IMPORT_ENABLED=false); manual passes only")
    try:
        yield
    finally:
        watcher.stop()


app = FastAPI(
    title="Partner Dashboard API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Partner Dashboard API"}
