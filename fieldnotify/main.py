from contextlib import asynccontextmanager

from fastapi import FastAPI

from fieldnotify.config import get_settings
from fieldnotify.interfaces.api.dependencies import get_notification_services
from fieldnotify.interfaces.api.routes import register_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_settings().store_backend == "sql":
        from fieldnotify.infrastructure.database import initialize_database

        initialize_database()

    reaper = get_notification_services().reaper
    reaper.start()
    try:
        yield
    finally:
        reaper.stop()


def create_app() -> FastAPI:
    app = FastAPI(title="fieldnotify", lifespan=lifespan)
    register_routes(app)
    return app


app = create_app()
