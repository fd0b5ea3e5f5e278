import logging
from typing import Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .logging_config import configure_logging
from .track_routes import router as track_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Studytrack Scheduler", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(track_router)

settings_snapshot = get_settings()
logger.info("Studytrack starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("Progress timezone: %s", settings_snapshot.timezone)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}
