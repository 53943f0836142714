import logging
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from auth import auth_router
from config import NOTIFICATION_TICK_MINUTES, SCHEDULER_ENABLED, configure_logging
from database import SessionLocal, init_db
from engagement_router import engagement_router
from notification_router import notification_router
from notifier import run_notification_tick
from router import router

configure_logging()
logger = logging.getLogger(__name__)


def notification_job():
    with SessionLocal() as db:
        run_notification_tick(db)


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        notification_job,
        "interval",
        minutes=NOTIFICATION_TICK_MINUTES,
        id="notification_tick",
        coalesce=True,
        max_instances=1,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler = None
    if SCHEDULER_ENABLED:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info("Notification scheduler started (every %d min)", NOTIFICATION_TICK_MINUTES)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Laksha Budget Tracker API", lifespan=lifespan)

app.include_router(router, prefix="/api", tags=["expenses"])
app.include_router(notification_router, prefix="/api/notifications", tags=["notifications"])
app.include_router(engagement_router, prefix="/api", tags=["engagement"])
app.include_router(auth_router, prefix="/auth", tags=["authentication"])


@app.get("/")
def home():
    return {"message": "Welcome to Laksha Budget Tracker API"}


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
