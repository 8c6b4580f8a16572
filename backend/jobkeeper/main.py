from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .db.database import create_engine, create_session_maker, init_db
from .logger import logger
from .recurring import FunctionRegistry, create_task_manager
from .routers import recurring


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[FunctionRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    The database engine and the TaskManager live for the duration of the
    lifespan; the manager is started once the registry is populated and
    stopped before the engine is disposed.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up and initializing the database...")
        engine = create_engine(settings.database_url, echo=settings.database_echo)
        await init_db(engine)

        task_manager = create_task_manager(
            create_session_maker(engine), settings.scheduler, registry
        )
        await task_manager.start()
        app.state.task_manager = task_manager
        logger.info("Startup complete.")
        try:
            yield
        finally:
            logger.info("Shutting down...")
            await task_manager.stop()
            await engine.dispose()

    app = FastAPI(lifespan=lifespan, title="Jobkeeper")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(recurring.router, prefix="/api")
    return app


app = create_app()
