from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from spinwick.api import installations
from spinwick.api.utils import register_exception_handlers
from spinwick.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    logger.info("Shutting down; cancelling pending waits and closing clients")
    installations.close_service_context(app.state)


app = FastAPI(
    title="SpinWick",
    description="Ephemeral per-pull-request review environments on the cloud provisioner",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/", include_in_schema=False)
def root() -> RedirectResponse:
    """Redirect root URL to Swagger UI docs."""
    return RedirectResponse(url="/docs")


app.include_router(installations.router)

register_exception_handlers(app)

if __name__ == "__main__":
    uvicorn.run("spinwick.main:app", host="0.0.0.0", port=8001, log_level="info", reload=True)
