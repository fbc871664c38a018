# chemledger/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chemledger.api.errors import ledger_error_handler
from chemledger.api.routers.compounds import router as compounds_router
from chemledger.api.routers.entries import router as entries_router
from chemledger.api.routers.ledger import router as ledger_router
from chemledger.core.config import AppSettings, get_settings
from chemledger.core.logging import setup_logging
from chemledger.db.session import Database
from chemledger.services.compound_service import CompoundService
from chemledger.services.entry_query_service import EntryQueryService
from chemledger.services.entry_service import EntryService
from chemledger.services.errors import LedgerError
from chemledger.services.retry import RetryPolicy

logger = logging.getLogger("chemledger")


def wire_services(app: FastAPI, database: Database, settings: AppSettings) -> None:
    """服务实例挂到 app.state，路由经 chemledger.api.deps 取用。"""
    policy = RetryPolicy.from_settings(settings)
    timeout = settings.REQUEST_TIMEOUT_S
    app.state.db = database
    app.state.entry_service = EntryService(database, policy=policy, timeout=timeout)
    app.state.query_service = EntryQueryService(database, policy=policy, timeout=timeout)
    app.state.compound_service = CompoundService(database, policy=policy, timeout=timeout)


def create_app(settings: Optional[AppSettings] = None, db: Optional[Database] = None) -> FastAPI:
    """
    应用装配：
    - 注入 db 时立即装配服务，生命周期归调用方（测试）；
    - 未注入时在启动阶段按 settings 建连接并建表（dev 便利；部署走 alembic），关闭时释放。
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        if db is not None:
            yield
            return

        database = Database.from_settings(settings)
        await database.create_all()
        wire_services(app, database, settings)
        logger.info("chemledger started env=%s", settings.ENV)
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(
        title="chemledger",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if db is not None:
        wire_services(app, db, settings)

    app.add_exception_handler(LedgerError, ledger_error_handler)

    @app.exception_handler(Exception)
    async def _unhandled_exc(_req: Request, exc: Exception):
        logger.exception("UNHANDLED_EXC: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "INTERNAL_ERROR", "message": "internal error", "context": {}}},
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(_req: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(HTTPException)
    async def _http_exc(_req: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    app.include_router(compounds_router)
    app.include_router(entries_router)
    app.include_router(ledger_router)

    return app


app = create_app()
