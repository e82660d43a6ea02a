from fastapi import FastAPI

from app.portal.api import api_router
from app.portal.core.config import settings
from app.portal.core.errors import setup_exception_handlers
from app.portal.core.logging import configure_logging
from app.portal.middleware.observability import ObservabilityMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
