"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gymledger import __version__
from gymledger.api import cash, jobs, memberships, payments
from gymledger.api.errors import register_error_handlers
from gymledger.models import Base
from gymledger.services import engine, settings
from gymledger.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    # Migrations own the schema in production; create_all covers fresh dev databases
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Gym Ledger",
        description="Membership lifecycle and daily cash ledger",
        version=__version__,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    app.include_router(memberships.router)
    app.include_router(payments.router)
    app.include_router(cash.router)
    app.include_router(jobs.router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_server_logging(settings.log_file, settings.log_level)
    uvicorn.run(app, host="0.0.0.0", port=8000)
