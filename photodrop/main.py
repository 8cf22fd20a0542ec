"""PhotoDrop Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from photodrop.config import settings
from photodrop.database import init_db
from photodrop.store import PersistentStore
from photodrop.utils.signing import CapabilitySigner

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the audit database and the persistent store; compact the store on shutdown."""
    init_db()

    store = PersistentStore(settings.storage_dir, compact_min_ops=settings.store_compact_min_ops)
    await store.ensure_loaded()
    app.state.store = store
    app.state.signer = CapabilitySigner(
        settings.download_secret,
        settings.upload_dir,
        uploads_prefix=settings.uploads_url_prefix,
    )
    logger.info("PhotoDrop ready (storage: %s, uploads: %s)", settings.storage_dir, settings.upload_dir)

    yield

    await store.close()


app = FastAPI(
    title="PhotoDrop",
    description="Secure photo delivery for shared client galleries",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a client error (400), not 422."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "Invalid request data", "details": jsonable_errors(exc)}},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


# --- Register API routers ---
from photodrop.api.activity import router as activity_router  # noqa: E402
from photodrop.api.downloads import router as downloads_router  # noqa: E402
from photodrop.api.favorites import router as favorites_router  # noqa: E402
from photodrop.api.gallery import router as gallery_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(gallery_router, prefix=API_PREFIX)
app.include_router(downloads_router, prefix=API_PREFIX)
app.include_router(favorites_router, prefix=API_PREFIX)
app.include_router(activity_router, prefix=API_PREFIX)


@app.get("/")
def root():
    """Server info."""
    return {
        "name": settings.server_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/api/v1/health")
def health():
    return {"status": "ok"}
