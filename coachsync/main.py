from fastapi import FastAPI

from coachsync.config.settings import settings
from coachsync.core.logger import setup_logger
from coachsync.webhooks.strava import router as strava_webhook_router

setup_logger(level=settings.log_level, log_file=settings.log_file)

app = FastAPI(title="coachsync", description="Strava activity sync and planned-session reconciliation")

app.include_router(strava_webhook_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
