import os
import sys
import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth_endpoints import router as auth_router
from .auth_provider import OAuthProviderFactory, ProviderRegistry
from .config import Settings
from .db import DB, AccountStore, ConnectionPool
from .errors import AppError
from .sessions import SessionManager

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema.sql"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _terminate(message: str, exc_info=None) -> None:
    logger.critical(message, exc_info=exc_info)
    logging.shutdown()
    os._exit(1)


def install_fatal_handlers() -> None:
    """Log and exit on uncaught exceptions instead of running on in a bad state."""
    def excepthook(exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        _terminate("UNCAUGHT EXCEPTION! Shutting down...", exc_info=(exc_type, exc, tb))

    def thread_excepthook(args):
        _terminate(
            f"UNCAUGHT EXCEPTION in thread {args.thread.name if args.thread else '?'}! Shutting down...",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    sys.excepthook = excepthook
    threading.excepthook = thread_excepthook


def loop_exception_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Unhandled errors in background tasks are fatal."""
    exc = context.get("exception")
    exc_info = (type(exc), exc, exc.__traceback__) if exc else None
    _terminate(f"UNHANDLED ASYNC ERROR! Shutting down... {context.get('message', '')}", exc_info=exc_info)


def error_body(request: Request, status_code: int, code: str, message: str, details=None) -> dict:
    error = {
        "message": message,
        "code": code,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def create_app(settings: Optional[Settings] = None,
               providers: Optional[ProviderRegistry] = None,
               install_loop_handler: bool = True) -> FastAPI:
    """Build the application.

    The connection pool is opened in the lifespan and shared through
    ``app.state`` with the account store, session manager and routes.
    """
    settings = settings or Settings.from_env()
    settings.validate()
    if providers is None:
        providers = OAuthProviderFactory.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting auth gateway: {settings.get_config_summary()}")
        if install_loop_handler:
            asyncio.get_running_loop().set_exception_handler(loop_exception_handler)

        with DB(settings.database_path) as db:
            db.init_schema(str(SCHEMA_PATH))

        pool = ConnectionPool(settings.database_path, size=settings.db_pool_size, timeout=settings.db_pool_timeout)
        store = AccountStore(pool)
        app.state.pool = pool
        app.state.store = store
        app.state.session_manager = SessionManager(store, ttl=timedelta(days=settings.session_lifetime_days))
        logger.info(f"Database pool ready ({settings.db_pool_size} connections)")

        yield

        logger.info("Shutting down auth gateway...")
        pool.close()

    app = FastAPI(title="OAuth Login Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.providers = providers

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Accept"],
            max_age=86400,
        )
        logger.info(f"CORS enabled for origins: {settings.cors_origins}")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.status_code, exc.code, exc.message, exc.details),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        message = "Internal server error" if settings.is_production else str(exc)
        return JSONResponse(status_code=500, content=error_body(request, 500, "INTERNAL_ERROR", message))

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(auth_router)
    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    install_fatal_handlers()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
