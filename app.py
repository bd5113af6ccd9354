"""Application factory and entry point.

Run with:
    TASKS_JWT_SECRET=... python app.py
or:
    TASKS_JWT_SECRET=... uvicorn app:create_app --factory --reload
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import auth_router, task_router
from db import Database
from seed import seed_admin
from settings import Settings
from store import TaskStore, UserStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Seed the admin user on startup; release the pool on shutdown."""
    settings: Settings = app.state.settings
    seed_admin(
        app.state.user_store,
        settings.admin_credentials,
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
    )
    logger.info("Task service started")

    yield

    app.state.database.dispose()
    logger.info("Task service stopped")


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Accepts optional settings and database for testing.  Building
    ``Settings`` from the environment fails if the signing secret is
    not set.
    """
    if settings is None:
        settings = Settings()

    if database is None:
        database = Database.from_url(settings.DATABASE_URL)
    database.create_schema()

    app = FastAPI(
        title="Task API",
        description=(
            "Per-user task management. Register, log in for a bearer "
            "token, then create, list, update and delete your own tasks."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.user_store = UserStore(database, bcrypt_rounds=settings.BCRYPT_ROUNDS)
    app.state.task_store = TaskStore(database)

    app.include_router(auth_router)
    app.include_router(task_router)
    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        create_app(settings),
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
    )


if __name__ == "__main__":
    main()
