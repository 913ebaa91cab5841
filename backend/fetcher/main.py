from fastapi import FastAPI
import logging
import os
import subprocess
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from logging.config import dictConfig

from .core.logging_config import get_uvicorn_log_config

# Apply logging configuration as early as possible (module import time)
_lvl_name = os.environ.get("APP_LOG_LEVEL", "INFO").upper()
dictConfig(get_uvicorn_log_config(getattr(logging, _lvl_name, logging.INFO)))

from .api.v1.acquire import router as acquire_router  # noqa: E402
from .api.v1.diagnostics import router as diagnostics_router  # noqa: E402
from .api.v1.health import router as health_router  # noqa: E402
from .api.v1.search import router as search_router  # noqa: E402
from .core.config import settings  # noqa: E402
from .utils.admission import AdmissionController  # noqa: E402
from .utils.media_fetch import build_client  # noqa: E402
from .utils.orchestrator import AudioAcquisitionOrchestrator  # noqa: E402
from .utils.strategies import resolve_yt_dlp_command  # noqa: E402
from .utils.transcoder import Mp3Transcoder  # noqa: E402

logger = logging.getLogger(__name__)

tags_metadata = [
    {"name": "health", "description": "Health checks and basic service info."},
    {"name": "acquire", "description": "Download audio for a YouTube video id."},
    {"name": "diagnostics", "description": "Strategy statistics, format cache and recent logs."},
    {"name": "search", "description": "Map an artist/title pair to YouTube video ids."},
]

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description=(
        "API that turns a YouTube video id into downloadable audio, trying several"
        " acquisition strategies in an order adapted to their recent performance."
    ),
    openapi_tags=tags_metadata,
    # Serve docs under /api/* to match API prefix
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    contact={"name": settings.app_name},
    license_info={
        "name": "MIT",
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Acquisition-Strategy", "Retry-After"],
)


@app.on_event("startup")
async def on_startup():
    # Tests may pre-populate app.state with fakes
    if getattr(app.state, "orchestrator", None) is None:
        http_client = build_client(settings.attempt_timeout)
        app.state.http_client = http_client
        app.state.orchestrator = AudioAcquisitionOrchestrator.from_settings(settings, http_client=http_client)
    if getattr(app.state, "admission", None) is None:
        app.state.admission = AdmissionController(settings.max_concurrent_acquisitions)
    if getattr(app.state, "transcoder", None) is None:
        app.state.transcoder = Mp3Transcoder.from_settings(settings)
    logger.info(
        "Acquisition strategies=%s capacity=%d ffmpeg=%s",
        ",".join(app.state.orchestrator.strategy_names),
        app.state.admission.capacity,
        app.state.transcoder.ffmpeg,
    )

    # Log yt-dlp version for diagnostics
    try:  # pragma: no cover
        cmd = resolve_yt_dlp_command(settings.yt_dlp_bin) + ["--version"]
        ver = subprocess.check_output(cmd, text=True, timeout=5).strip()
        logger.info("yt-dlp version=%s cmd=%s", ver, " ".join(cmd[:-1]))
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("yt-dlp not usable: %s", e)


@app.on_event("shutdown")
async def on_shutdown():
    http_client = getattr(app.state, "http_client", None)
    if http_client is not None:
        await http_client.aclose()
        app.state.http_client = None


# Routes
app.include_router(health_router, prefix="/api/v1")
app.include_router(acquire_router, prefix="/api/v1")
app.include_router(diagnostics_router, prefix="/api/v1")
app.include_router(search_router, prefix="/api/v1")


@app.get("/api")
def api_root():
    return {"name": settings.app_name, "version": settings.version}


# Convenience redirects for default FastAPI docs paths
@app.get("/docs", include_in_schema=False)
async def docs_redirect():
    return RedirectResponse(url="/api/docs")


@app.get("/redoc", include_in_schema=False)
async def redoc_redirect():
    return RedirectResponse(url="/api/redoc")
