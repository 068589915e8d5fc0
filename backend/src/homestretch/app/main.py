"""FastAPI application entry point for the Homestretch closing-pipeline API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homestretch.app.config import get_settings
from homestretch.infra.database import async_session, init_db
from homestretch.services.earnest_inbox_automation import process_pending_messages

logger = logging.getLogger(__name__)


async def inbox_automation_loop():
    """Analyze inbound messages that intake could not finish, on an interval."""
    interval = get_settings().inbox_automation_interval_seconds
    while True:
        try:
            async with async_session() as db:
                await process_pending_messages(db)
        except Exception as e:
            logger.error("Inbox automation error: %s", e)
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database, start the inbox automation loop."""
    await init_db()
    task = asyncio.create_task(inbox_automation_loop())
    yield
    task.cancel()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Homestretch API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from homestretch.app.routes.properties import router as properties_router
from homestretch.app.routes.pipeline import router as pipeline_router
from homestretch.app.routes.inbox import router as inbox_router, inbound_router
from homestretch.app.routes.contacts import router as contacts_router

app.include_router(properties_router)
app.include_router(pipeline_router)
app.include_router(inbox_router)
app.include_router(inbound_router)
app.include_router(contacts_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "homestretch"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "homestretch.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
