"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from app.adapters.inbound.http.routes import router
from app.infrastructure.config.settings import settings
from app.infrastructure.logging.logger import logger
from app.infrastructure.scheduling.polling_loop import get_scheduler_registry
from app.infrastructure.wiring.dependencies import get_container, register_polling_loops

# Load environment variables from .env file
load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background polling loops in-process when enabled."""
    registry = get_scheduler_registry()
    if settings.run_background_loops:
        register_polling_loops(get_container(), registry)
        started = registry.start_all()
        logger.info(f"Background loops started: {', '.join(started) or 'none'}")
    yield
    await registry.stop_all()


app = FastAPI(
    title="Lead Lifecycle Automation",
    description="Lead assignment, scheduling invitations and meeting reminders",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)
