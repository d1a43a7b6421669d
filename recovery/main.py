import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from recovery import __version__
from recovery.db.base import SessionLocal, get_db
from recovery.core.config import settings
from recovery.core.logging_config import configure_logging
from recovery.routers import progress as progress_router
from recovery.services.reconciliation import ReconciliationService
from recovery.core.errors import (
    RecoveryError,
    recovery_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

logger = logging.getLogger(__name__)


def create_app(session_factory: Optional[Callable[[], Session]] = None) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = ReconciliationService(
            session_factory or SessionLocal,
            total_program_days=settings.TOTAL_PROGRAM_DAYS,
        )
        result = service.bootstrap(seed_new_user=settings.SEED_NEW_USER)
        if not result.ok:
            logger.error("Bootstrap failed; running on in-memory state only")
        app.state.reconciliation = service
        yield

    app = FastAPI(
        title="Recovery Progress API",
        description=(
            "**No-contact recovery tracker**\n\n"
            "Tracks healing levels, the no-contact streak, relapses, power actions, "
            "daily check-ins and badges for a single local user.\n\n"
            "All error responses follow the `{code, message, details}` envelope."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers (most specific first) ---
    app.add_exception_handler(RecoveryError, recovery_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --- Routers ---
    app.include_router(progress_router.router)

    if session_factory is not None:
        def _get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db

    @app.get("/health", tags=["health"], summary="Health check")
    def health(db: Session = Depends(get_db)):
        """
        Returns `{"status": "ok", "db": "ok"}` when both the API and the database
        are reachable. Returns HTTP 503 if the DB is down.
        """
        try:
            db.execute(text("SELECT 1"))
            db_status = "ok"
        except Exception:
            db_status = "unreachable"

        if db_status != "ok":
            return JSONResponse(
                status_code=503,
                content={"status": "error", "db": db_status},
            )
        return {"status": "ok", "db": "ok", "env": settings.APP_ENV}

    return app


app = create_app()
