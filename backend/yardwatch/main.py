import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from yardwatch.database import init_db
from yardwatch.config import get_settings
from yardwatch.errors import AlertError
from yardwatch.api.alerts import router as alerts_router
from yardwatch.api.search import router as search_router
from yardwatch.api.scheduler import router as scheduler_router
from yardwatch.services.scheduler import scheduler
from yardwatch.services.alert_jobs import ALERT_JOBS, DAILY_ALERTS_JOB

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    await init_db()
    logger.info("Database initialized")

    scheduler.start()

    # The daily sweep only runs where ENABLE_SCHEDULER is set
    if settings.enable_scheduler:
        job = ALERT_JOBS[DAILY_ALERTS_JOB]
        scheduler.add_cron_job(
            job_id=DAILY_ALERTS_JOB,
            func=job["func"],
            cron_expression=settings.alert_cron,
            cron=settings.alert_cron,
        )
        logger.info(f"Daily alert sweep scheduled: {settings.alert_cron} UTC")

    yield

    # Shutdown
    logger.info("Shutting down scheduler...")
    scheduler.shutdown()


app = FastAPI(
    title="YardWatch API",
    description="Junkyard inventory search and saved-search push alerts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
    max_age=86400,
)


@app.exception_handler(AlertError)
async def alert_error_handler(request: Request, exc: AlertError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def describe_validation_error(exc: RequestValidationError) -> str:
    """One readable message for a malformed request body or query"""
    errors = exc.errors()
    if not errors:
        return "Invalid request"

    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Request body must be valid JSON"

    location = [str(part) for part in first.get("loc", ()) if part != "body"]
    if not location:
        return "Request body must be a JSON object"
    return f"{'.'.join(location)}: {first.get('msg', 'invalid value')}"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": describe_validation_error(exc)})


app.include_router(alerts_router)
app.include_router(search_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    return {
        "message": "YardWatch API",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "alerts": "/alerts",
            "search": "/api/searchAll",
            "makes": "/api/makesAll",
            "models": "/api/modelsAll",
            "scheduler": "/api/scheduler",
        }
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
