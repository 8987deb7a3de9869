# vibeshit/main.py
#
# Usage:
#   uvicorn vibeshit.main:create_app --factory --reload
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from vibeshit.auth.identity import IdentityResolver, identity_middleware
from vibeshit.core.config import Settings, get_settings
from vibeshit.core.exceptions import (
    VibeShitException,
    internal_error_response,
    request_validation_exception_handler,
    upstream_exception_handler,
    vibeshit_exception_handler,
)
from vibeshit.database import create_db_engine, create_session_factory, init_db
from vibeshit.routers import auth, project, storage, upload
from vibeshit.utils.s3 import S3Storage

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    storage_client: Optional[S3Storage] = None,
    resolver: Optional[IdentityResolver] = None,
) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} in {settings.ENV} mode")
        init_db(app.state.engine)
        yield
        logger.info(f"Shutting down {settings.APP_NAME}")
        app.state.engine.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    # Application-scoped collaborators; handlers reach them through the request
    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.storage = storage_client or S3Storage.from_settings(settings)
    app.state.identity = resolver or IdentityResolver(settings)

    # Identity is resolved once per request; renewed cookies ride on the response
    app.middleware("http")(identity_middleware)

    # CORS with credentials (for cookie sessions)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=settings.ALLOW_METHODS,
        allow_headers=settings.ALLOW_HEADERS,
    )

    app.add_exception_handler(VibeShitException, vibeshit_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, upstream_exception_handler)
    app.add_exception_handler(ClientError, upstream_exception_handler)
    app.add_exception_handler(BotoCoreError, upstream_exception_handler)

    @app.exception_handler(Exception)
    async def handle_general_exception(request: Request, exc: Exception):
        logger.exception(f"Unexpected error: {exc}")
        return internal_error_response()

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    # Routers
    app.include_router(auth.router)
    app.include_router(project.router)
    app.include_router(upload.router)
    app.include_router(storage.router)

    return app
