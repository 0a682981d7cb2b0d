"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.mk_catalog.infrastructure.persistence import ListingRepository
from src.mk_common.database import create_engine, create_session_factory
from src.mk_common.errors import AppError
from src.mk_common.id_generator import configure as configure_ids
from src.mk_common.redis_client import close_redis, create_redis
from src.mk_common.response import error_response
from src.mk_gateway.middleware.request_log import RequestLogMiddleware
from src.mk_inventory.infrastructure.ledger import InventoryLedger
from src.mk_order.api.router import router as order_router
from src.mk_order.infrastructure.persistence import OrderRepository
from src.mk_payment.api.router import router as payment_router
from src.mk_payment.infrastructure.razorpay_gateway import RazorpayGateway, build_http_client
from src.mk_settlement.application.service import SettlementService
from src.mk_settlement.application.sweeper import sweep_forever
from src.mk_settlement.infrastructure.notifier import HttpNotifier, LogNotifier, NotifierProtocol
from src.mk_settlement.infrastructure.sweep_lock import RedisSweepLock

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: wire storage, gateway and notifier into the service. Shutdown: dispose."""
    # Startup
    worker_id = configure_ids(settings.ID_WORKER_ID)
    logger.info("id worker %d", worker_id)
    engine = create_engine(settings)
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    session_factory = create_session_factory(engine)
    redis = create_redis(settings)
    await redis.ping()

    gateway_http = build_http_client(settings)
    notifier_http: httpx.AsyncClient | None = None
    notifier: NotifierProtocol
    if settings.NOTIFIER_URL:
        notifier_http = httpx.AsyncClient(timeout=settings.NOTIFIER_TIMEOUT_SECONDS)
        notifier = HttpNotifier(notifier_http, settings.NOTIFIER_URL)
    else:
        notifier = LogNotifier()

    service = SettlementService(
        listings=ListingRepository(),
        ledger=InventoryLedger(),
        orders=OrderRepository(),
        gateway=RazorpayGateway(gateway_http, settings),
        notifier=notifier,
        settings=settings,
    )
    app.state.session_factory = session_factory
    app.state.settlement_service = service

    sweeper: asyncio.Task[None] | None = None
    if settings.SWEEP_ENABLED:
        lock = RedisSweepLock(redis, settings.SWEEP_LOCK_TTL_SECONDS)
        sweeper = asyncio.create_task(
            sweep_forever(service, session_factory, lock, settings.SWEEP_INTERVAL_SECONDS)
        )
        logger.info("order sweep every %ds", settings.SWEEP_INTERVAL_SECONDS)

    yield

    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await service.drain_notifications()
    await gateway_http.aclose()
    if notifier_http is not None:
        await notifier_http.aclose()
    await close_redis(redis)
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(order_router, prefix="/api/v1")
app.include_router(payment_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
