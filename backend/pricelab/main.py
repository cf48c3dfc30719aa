"""Main FastAPI application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio

from pricelab.config import get_settings
from pricelab.middleware.logging import LoggingMiddleware, get_logger
from pricelab.middleware.auth import hash_api_key
from pricelab.api import experiments, health, listings, rl
from pricelab.database import engine, Base, SessionLocal
from pricelab.models import User
from pricelab.services.events import OutcomePublisher
from pricelab.services.exceptions import LearningError
from pricelab.services.experiments import ExperimentManager
from pricelab.services.redis_client import get_redis

settings = get_settings()
logger = get_logger()

# Periodic experiment completion sweep
sweep_task = None


def run_experiment_sweep() -> int:
    """Complete expired experiments with a fresh session."""
    db = SessionLocal()
    try:
        publisher = OutcomePublisher(get_redis(), channel=settings.learning_events_channel)
        return ExperimentManager(db, publisher=publisher).complete_expired_experiments()
    finally:
        db.close()


async def experiment_sweep_loop():
    """Run the completion sweep every experiment_sweep_interval_seconds."""
    while True:
        await asyncio.sleep(settings.experiment_sweep_interval_seconds)
        try:
            completed = await asyncio.to_thread(run_experiment_sweep)
            logger.info("experiment_sweep_finished", completed=completed)
        except Exception as e:
            logger.error("experiment_sweep_failed", error=str(e), error_type=type(e).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    global sweep_task

    # Startup
    Base.metadata.create_all(bind=engine)
    logger.info("database_tables_verified")

    # Seed a default API user if the database is empty
    db = SessionLocal()
    try:
        existing_user = db.query(User).first()
        if not existing_user:
            db.add(User(api_key_hash=hash_api_key("test-key-123")))
            db.commit()
            logger.info("database_seeded", api_user="default")
    except Exception as e:
        logger.error("database_seed_failed", error=str(e))
        db.rollback()
    finally:
        db.close()

    sweep_task = asyncio.create_task(experiment_sweep_loop())
    logger.info("experiment_sweep_started", interval_seconds=settings.experiment_sweep_interval_seconds)

    yield  # App runs here

    # Shutdown
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    logger.info("shutting_down", service=settings.app_name)

# Create FastAPI app
app = FastAPI(
    title="PriceLab",
    description="Pricing experimentation and reinforcement learning service",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)


@app.exception_handler(LearningError)
async def learning_error_handler(request: Request, exc: LearningError):
    """Map service errors to their HTTP status with a stable error body."""
    if exc.status_code >= 500:
        logger.error("learning_error", path=request.url.path, error=exc.code, message=exc.message)
    else:
        logger.warning("learning_error", path=request.url.path, error=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# CORS middleware - Allow frontend origins
allowed_origins = [
    "http://localhost:5173",  # Local development
    "http://localhost:3000",  # Alternative local port
    settings.frontend_url,     # Production frontend
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID"]
)

# Logging middleware
app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(experiments.router, tags=["experiments"])
app.include_router(rl.router, tags=["rl"])
app.include_router(listings.router, tags=["listings"])


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "disabled",
        "endpoints": {
            "health": "/health",
            "experiments": "POST /learning/experiment/create",
            "rl": "POST /learning/rl/action",
            "train": "POST /learning/rl/train"
        }
    }


# uvicorn pricelab.main:app --reload
