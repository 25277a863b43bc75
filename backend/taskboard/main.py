import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskboard.core.config import Settings, settings
from taskboard.core.database import build_engine, build_sessionmaker, create_tables
from taskboard.core.logging_setup import setup_logging
from taskboard.core.responses import register_error_handlers
from taskboard.routers import tasks, users
from taskboard.services.consistency import ConsistencyEngine
from taskboard.stores.tasks import TaskStore
from taskboard.stores.users import UserStore

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings

    engine = build_engine(app_settings)
    sessions = build_sessionmaker(engine)
    task_store = TaskStore(sessions, default_limit=app_settings.TASK_DEFAULT_LIMIT)
    user_store = UserStore(sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await create_tables(engine)
        logger.info("Taskboard API ready db=%s", engine.url.render_as_string(hide_password=True))
        yield
        await engine.dispose()

    app = FastAPI(title="Taskboard API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = app_settings
    app.state.db_engine = engine
    app.state.task_store = task_store
    app.state.user_store = user_store
    app.state.consistency = ConsistencyEngine(task_store, user_store)

    register_error_handlers(app)
    app.include_router(tasks.router)
    app.include_router(users.router)

    @app.get("/")
    async def root():
        return {"message": "Taskboard API is running"}

    return app


app = create_app()


def main() -> None:
    setup_logging(level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
    uvicorn.run(app, host="0.0.0.0", port=settings.API_PORT, log_config=None)


if __name__ == "__main__":
    main()
