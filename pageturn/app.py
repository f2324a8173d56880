import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pageturn.config import CASCADE_PAGES_READ
from pageturn.errors import DomainError
from pageturn.routers import books, progress, sessions, streak
from pageturn.services.clock import TimezoneClock
from pageturn.services.collaborators import LoggingCacheSignal, default_rating_sync

logger = logging.getLogger(__name__)


def setup_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(clock: TimezoneClock | None = None) -> FastAPI:
    app = FastAPI(title="Pageturn", version="0.1.0")
    app.state.clock = clock or TimezoneClock()
    app.state.rating_sync = default_rating_sync()
    app.state.cache_signal = LoggingCacheSignal()
    app.state.cascade_pages_read = CASCADE_PAGES_READ
    setup_error_handlers(app)
    app.include_router(books.router)
    app.include_router(sessions.router)
    app.include_router(progress.router)
    app.include_router(streak.router)
    return app


app = create_app()
