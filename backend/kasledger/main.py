from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from kasledger.api.routers import api_router
from kasledger.core.config import settings
from kasledger.core.datetime_utils import today_in
from kasledger.core.errors import LedgerError, OpeningBalanceRequired
from kasledger.core.logger import setup_logging
from kasledger.db.init_db import ensure_seed_data
from kasledger.models.base import Base
from kasledger.services.catalog import CatalogCache
from kasledger.services.extract import ExtractEngine
from kasledger.services.ledger import LedgerEngine
from kasledger.services.monthly_balance import MonthlyBalanceStore
from kasledger.services.submission import SubmissionCoordinator

logger = logging.getLogger(__name__)


def create_app(session_factory: sessionmaker[Session] | None = None) -> FastAPI:
    if session_factory is None:
        from kasledger.db.session import SessionLocal

        session_factory = SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging()

        db = session_factory()
        try:
            if settings.auto_create_schema:
                Base.metadata.create_all(bind=db.get_bind())
            ensure_seed_data(db)
            app.state.catalog.reload(db)
        finally:
            db.close()

        logger.info("Kas ledger started")
        yield
        logger.info("Kas ledger stopped")

    app = FastAPI(title="Kas Ledger API", lifespan=lifespan)

    catalog = CatalogCache()
    monthly_balances = MonthlyBalanceStore(catalog)
    ledger = LedgerEngine(
        catalog,
        monthly_balances,
        today=lambda: today_in(settings.time_zone),
        max_retries=settings.ledger_write_retries,
    )
    app.state.session_factory = session_factory
    app.state.catalog = catalog
    app.state.monthly_balances = monthly_balances
    app.state.ledger = ledger
    app.state.coordinator = SubmissionCoordinator(ledger, pending_ttl_seconds=settings.pending_submission_ttl_seconds)
    app.state.extract = ExtractEngine(catalog, monthly_balances)

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        body: dict = {"detail": exc.message}
        transaction_id = getattr(exc, "transaction_id", None)
        if transaction_id is not None:
            body["transactionId"] = transaction_id
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(OpeningBalanceRequired)
    async def opening_balance_handler(request: Request, exc: OpeningBalanceRequired) -> JSONResponse:
        # Only reached when the engine is called outside the submission workflow.
        return JSONResponse(
            {"detail": str(exc), "monthKey": exc.month_key, "accounts": exc.accounts},
            status_code=409,
        )

    return app


app = create_app()
