import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .routes import triggers


def _setup_logging():
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _setup_logging()
    logging.getLogger(__name__).info("Starting automation keeper (lifespan startup)...")
    try:
        yield
    finally:
        logging.getLogger(__name__).info("Shutting down automation keeper (lifespan shutdown)...")


def create_app() -> FastAPI:
    app = FastAPI(title="automation-keeper", version="0.1.0", lifespan=lifespan)
    app.include_router(triggers.router, prefix="/api")

    @app.get("/healthz")
    async def healthz():
        """
        Liveness probe endpoint.
        """
        return {"status": "ok"}

    return app


app = create_app()
