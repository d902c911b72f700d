"""
FastAPI Application Entry Point

Food ordering backend: order lifecycle, store availability and realtime
order updates for the customer mini-app and the admin console.

Endpoints:
    - POST  /api/orders: Create order (admission gate applies)
    - GET   /api/orders: List orders, newest first (?phone= for one customer)
    - GET   /api/orders/{id}: Get order
    - PATCH /api/orders/{id}/status: Change order status
    - GET   /api/store/status: Store availability
    - GET   /api/settings, PATCH /api/settings/{key}: Store settings
    - POST  /api/auth/otp, POST /api/auth/otp/verify: Phone verification codes
    - WS    /ws/orders: Realtime order events
    - GET   /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi import status as ws_status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from food_ordering.core.config import get_settings, setup_logging
from food_ordering.core.exceptions import OrderingError
from food_ordering.database import get_db, init_db, engine
from food_ordering.models import OrderStatus
from food_ordering.schemas import (
    OrderCreate,
    OrderResponse,
    OrderListResponse,
    StatusUpdateRequest,
    StoreStatusResponse,
    SettingResponse,
    SettingUpdate,
    OtpRequest,
    OtpResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
    ErrorResponse,
    HealthResponse,
)
from food_ordering.services.broadcaster import ORDERS_TOPIC, OrderEvent, get_broadcaster
from food_ordering.services.notifications import get_notification_service
from food_ordering.services.orders import OrderService
from food_ordering.services.otp import get_otp_service
from food_ordering.services.settings_store import SettingsStore

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Store timezone: {settings.store_timezone}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    notification_service = get_notification_service()
    logger.info(f"✅ Notification Service: {notification_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    yield  # Application runs

    logger.info("Shutting down...")
    get_broadcaster().close_all()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order lifecycle, store availability and realtime order updates "
        "for the ordering mini-app and the admin console."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        subscribers=get_broadcaster().subscriber_count(ORDERS_TOPIC),
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Create a new order.

    Rejected with 409 ``store_closed`` (message and ``next_change_time``)
    when the store is not accepting orders.
    """
    logger.info(f"Creating {order_data.order_type.value} order with {len(order_data.items)} line(s)")
    order = await service.create_order(order_data)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    phone: Optional[str] = Query(None, max_length=20),
    status: Optional[OrderStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Orders newest first; ``phone`` narrows to one customer's history."""
    total, orders = await service.list_orders(phone=phone, status=status, skip=skip, limit=limit)
    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    return OrderResponse.model_validate(await service.get_order(order_id))


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Change Order Status",
)
async def change_order_status(
    order_id: int,
    update: StatusUpdateRequest,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Move an order along its lifecycle; 409 ``invalid_transition`` if not allowed."""
    order = await service.change_status(order_id, update.status, update.expected_status)
    return OrderResponse.model_validate(order)


# =============================================================================
# STORE STATUS & SETTINGS
# =============================================================================

@app.get(
    "/api/store/status",
    response_model=StoreStatusResponse,
    tags=["Store"],
    summary="Store Availability",
)
async def store_status(
    service: OrderService = Depends(get_order_service),
) -> StoreStatusResponse:
    verdict = await service.get_availability()
    return StoreStatusResponse(
        is_open=verdict.is_open,
        message=verdict.message,
        mode=verdict.mode,
        next_change_time=verdict.next_change_time,
        phone=verdict.contact_phone,
    )


@app.get("/api/settings", response_model=list[SettingResponse], tags=["Store"])
async def list_settings(db: AsyncSession = Depends(get_db)) -> list[SettingResponse]:
    store = SettingsStore(db)
    return [SettingResponse.model_validate(s) for s in await store.list_settings()]


@app.patch("/api/settings/{key}", response_model=SettingResponse, tags=["Store"])
async def update_setting(
    key: str,
    update: SettingUpdate,
    db: AsyncSession = Depends(get_db),
) -> SettingResponse:
    store = SettingsStore(db)
    return SettingResponse.model_validate(await store.set_setting(key, update.value))


# =============================================================================
# PHONE VERIFICATION
# =============================================================================

@app.post("/api/auth/otp", response_model=OtpResponse, tags=["Auth"])
async def request_otp(body: OtpRequest) -> OtpResponse:
    """Issue a verification code and send it by SMS."""
    code = get_otp_service().issue(body.phone)
    result = await get_notification_service().send_otp(body.phone, code)
    if not result.success:
        logger.warning(f"OTP delivery to {body.phone} failed: {result.error_message}")
    return OtpResponse(success=result.success, expires_in=settings.otp_ttl_seconds)


@app.post("/api/auth/otp/verify", response_model=OtpVerifyResponse, tags=["Auth"])
async def verify_otp(body: OtpVerifyRequest) -> OtpVerifyResponse:
    return OtpVerifyResponse(verified=get_otp_service().verify(body.phone, body.code))


# =============================================================================
# REALTIME
# =============================================================================

def _customer_filter(phone: str):
    # Stored phones are stripped by OrderCreate.validate_phone
    phone = phone.strip()

    def matches(event: OrderEvent) -> bool:
        return event.order.get("customer_phone") == phone
    return matches


async def _close_on_disconnect(websocket: WebSocket, subscription) -> None:
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
    finally:
        subscription.close()


async def _stop_watcher(watcher: asyncio.Task) -> None:
    """Cancel the disconnect watcher and collect its outcome."""
    watcher.cancel()
    await asyncio.wait([watcher])
    if not watcher.cancelled() and watcher.exception() is not None:
        logger.warning(f"Order stream watcher failed: {watcher.exception()}")


@app.websocket("/ws/orders")
async def orders_stream(
    websocket: WebSocket,
    phone: Optional[str] = Query(None),
) -> None:
    """
    Push ``order.created`` / ``order.status_changed`` events.

    Admin dashboards connect without parameters; a customer session passes
    ``?phone=`` and only sees its own orders. Clients fetch
    ``GET /api/orders`` after connecting to reconcile missed events.
    """
    broadcaster = get_broadcaster()
    subscription = broadcaster.subscribe(
        ORDERS_TOPIC,
        event_filter=_customer_filter(phone) if phone and phone.strip() else None,
    )
    await websocket.accept()
    watcher = asyncio.create_task(_close_on_disconnect(websocket, subscription))

    try:
        async for event in subscription:
            await websocket.send_json(event.to_message())
        if not watcher.done():
            # Dropped by the broadcaster: ask the client to reconnect
            await websocket.close(code=ws_status.WS_1013_TRY_AGAIN_LATER)
    except WebSocketDisconnect:
        logger.info("Order stream client disconnected")
    finally:
        await _stop_watcher(watcher)
        subscription.close()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Domain errors become structured responses."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
