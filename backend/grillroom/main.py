from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging
import os

from core.config import JUDGE_MODEL, QA_MODE
from grillroom.api.sessions import router as sessions_router
from grillroom.api.ws_interview import router as interview_ws_router
from grillroom.session.registry import session_registry
from grillroom.system_metrics import get_metrics_snapshot

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("grillroom.main")

DEFAULT_DEV_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
)
REGISTRY_SWEEP_TTL_SEC = max(60, int(os.getenv("SESSION_CLEANUP_TTL_SEC", "1800")))
REGISTRY_SWEEP_INTERVAL_SEC = max(30, int(os.getenv("SESSION_CLEANUP_INTERVAL_SEC", "120")))


def _cors_origins() -> list[str]:
    configured = [item.strip() for item in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if item.strip()]
    return configured or list(DEFAULT_DEV_ORIGINS)


async def _sweep_registry_forever() -> None:
    while True:
        await asyncio.sleep(REGISTRY_SWEEP_INTERVAL_SEC)
        swept = session_registry.sweep(REGISTRY_SWEEP_TTL_SEC)
        if swept:
            logger.info("[SYSTEM] swept released sessions=%s", swept)


app = FastAPI(title="Grillroom Interview Engine")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)
app.state.sweeper = None


@app.on_event("startup")
async def on_startup():
    judge_mode = "heuristic (QA_MODE)" if QA_MODE else JUDGE_MODEL
    logger.info("[SYSTEM] grillroom starting | judge=%s origins=%s", judge_mode, _cors_origins())
    app.state.sweeper = asyncio.create_task(_sweep_registry_forever())


@app.on_event("shutdown")
async def on_shutdown():
    sweeper = app.state.sweeper
    app.state.sweeper = None
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    logger.info("[SYSTEM] grillroom stopped | live_sessions=%s", session_registry.active_count())


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "grillroom"}


@app.get("/api/system/metrics")
def system_metrics_route():
    return get_metrics_snapshot(extra={
        "sessions_registered_active": session_registry.active_count(),
        "qa_mode": QA_MODE,
    })


app.include_router(interview_ws_router)
app.include_router(sessions_router)
