"""
FastAPI Application Entry Point

QR Table Ordering - order lifecycle and live kitchen/table updates.

Endpoints:
    - GET/POST/PUT/DELETE /api/menu: Menu catalog (admin CRUD)
    - POST /api/orders: Submit a cart as a new order
    - PATCH /api/orders/{id}: Status change or Pending-order edit
    - POST /api/orders/{id}/advance: Kitchen moves an order one step
    - POST /api/orders/{id}/cancel: Cancel a Pending order
    - DELETE /api/orders/{id}/items/{index}: Remove one line
    - GET /api/tables/{table}/orders: A table's order history
    - GET /api/reports/summary: Admin statistics
    - WS /ws: Kitchen and table rooms
    - GET /health: System health check

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError as BrokerError
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.exceptions import OrderingError
from app.database import engine, get_db, init_db
from app.models import OrderStatus
from app.schemas import (
    ErrorResponse,
    HealthResponse,
    MenuItemCreate,
    MenuItemResponse,
    OrderCreate,
    OrderListResponse,
    OrderPatch,
    OrderResponse,
    RealtimeFrame,
    ReportSummary,
)
from app.services.menu import MenuCatalog
from app.services.orders import OrderService, OrderStore, is_terminal
from app.services.payment import get_payment_service
from app.services.realtime import (
    BaseBroadcastChannel,
    BroadcastEvent,
    Subscription,
    get_broadcast_channel,
)
from app.services.reports import ReportService
from app.tasks import export_order_to_excel, order_export_data

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
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    channel = get_broadcast_channel()
    await channel.start()
    payment_service = get_payment_service()
    logger.info(f"✅ Broadcast Channel: {channel.provider_name}")
    logger.info(f"✅ Payment Service: {payment_service.provider_name}")

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"⚠️ Production config problems: {problems}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await channel.stop()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR table ordering: carts become orders, the kitchen advances them "
        "step by step, and every change is pushed to kitchen and table rooms."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES & HELPERS
# =============================================================================

def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_menu_catalog(db: AsyncSession = Depends(get_db)) -> MenuCatalog:
    return MenuCatalog(db)


def queue_export_if_finished(order: OrderResponse) -> None:
    """Finished orders are appended to the reporting workbook in the background."""
    if not is_terminal(order.status):
        return
    try:
        export_order_to_excel.delay(order_export_data(order))
    except BrokerError as e:
        logger.error(f"Could not queue export for Order #{order.id}: {e}")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.restaurant_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "realtime": "/ws",
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
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    channel = get_broadcast_channel()
    broadcast_status = "healthy" if await channel.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, broadcast_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        broadcast=f"{broadcast_status} ({channel.provider_name})",
        timestamp=datetime.now(),
    )


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get("/api/menu", response_model=list[MenuItemResponse], tags=["Menu"])
async def list_menu(
    category: Optional[str] = Query(None),
    catalog: MenuCatalog = Depends(get_menu_catalog),
) -> list[MenuItemResponse]:
    """Menu sorted by category and name."""
    return await catalog.list(category=category)


@app.post("/api/menu", response_model=MenuItemResponse, status_code=201, tags=["Menu"])
async def create_menu_item(
    payload: MenuItemCreate,
    catalog: MenuCatalog = Depends(get_menu_catalog),
) -> MenuItemResponse:
    return await catalog.create(payload)


@app.put("/api/menu/{item_id}", response_model=MenuItemResponse, tags=["Menu"])
async def update_menu_item(
    item_id: int,
    payload: MenuItemCreate,
    catalog: MenuCatalog = Depends(get_menu_catalog),
) -> MenuItemResponse:
    return await catalog.update(item_id, payload)


@app.delete("/api/menu/{item_id}", tags=["Menu"])
async def delete_menu_item(
    item_id: int,
    catalog: MenuCatalog = Depends(get_menu_catalog),
) -> dict[str, Any]:
    await catalog.delete(item_id)
    return {"success": True, "message": "Item deleted successfully"}


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Submit Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Turn a table's cart into a Pending order and notify the kitchen."""
    logger.info(f"Creating order for table {order_data.table_number}")
    return await service.submit(order_data)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status: Optional[OrderStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Newest orders first, optionally filtered by status."""
    total, orders = await OrderStore(db).list(status=status, skip=skip, limit=limit)
    return OrderListResponse(
        total=total,
        orders=[OrderResponse.from_record(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    return await service.get(order_id)


@app.patch(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def patch_order(
    order_id: int,
    payload: OrderPatch,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Change status, or replace the items of a Pending order."""
    order = await service.patch(order_id, payload)
    queue_export_if_finished(order)
    return order


@app.post(
    "/api/orders/{order_id}/advance",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Kitchen"],
)
async def advance_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Move an order to the next kitchen step."""
    order = await service.advance(order_id)
    queue_export_if_finished(order)
    return order


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.cancel(order_id)
    queue_export_if_finished(order)
    return order


@app.delete(
    "/api/orders/{order_id}/items/{index}",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def remove_order_item(
    order_id: int,
    index: int,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Remove one line; removing the last line cancels the order."""
    order = await service.remove_item(order_id, index)
    queue_export_if_finished(order)
    return order


@app.get(
    "/api/tables/{table_number}/orders",
    response_model=list[OrderResponse],
    tags=["Orders"],
)
async def table_orders(
    table_number: str,
    service: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    """Every order placed from one table, newest first."""
    return await service.list_by_table(table_number)


# =============================================================================
# REPORT ENDPOINTS
# =============================================================================

@app.get("/api/reports/summary", response_model=ReportSummary, tags=["Reports"])
async def report_summary(db: AsyncSession = Depends(get_db)) -> ReportSummary:
    """Revenue, order counts and best sellers."""
    return await ReportService(db).summary()


# =============================================================================
# REALTIME ENDPOINT
# =============================================================================

def _reply(subscription: Subscription, event: str, data: Any) -> None:
    """Queue a direct reply so the forwarding task stays the only writer."""
    subscription.deliver(BroadcastEvent(room="", name=event, payload=data))


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_frame())


async def _handle_frame(
    message: Any,
    channel: BaseBroadcastChannel,
    subscription: Subscription,
) -> None:
    try:
        frame = RealtimeFrame.model_validate(message)
    except ValidationError:
        _reply(subscription, "error", {"detail": "Frames must look like {\"event\": ..., \"data\": ...}"})
        return

    try:
        if frame.event == "join-room":
            room = str(frame.data)
            subscription.join(room)
            _reply(subscription, "joined", {"room": room})
        elif frame.event == "leave-room":
            room = str(frame.data)
            subscription.leave(room)
            _reply(subscription, "left", {"room": room})
        else:
            await channel.relay(frame.event, frame.data)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError as well
        _reply(subscription, "error", {"event": frame.event, "detail": str(e)})


@app.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    """
    Kitchen dashboards and table views connect here and join their rooms.

    Client frames: join-room, leave-room, new-order, update-status.
    Server frames: joined, left, new-order, status-changed, order-updated, error.
    """
    await websocket.accept()
    channel = get_broadcast_channel()
    subscription = channel.subscribe()
    sender = asyncio.create_task(_forward_events(websocket, subscription))

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                _reply(subscription, "error", {"detail": "Invalid JSON"})
                continue
            await _handle_frame(message, channel, subscription)
    except WebSocketDisconnect:
        logger.debug(f"Realtime client left rooms {sorted(subscription.rooms)}")
    finally:
        subscription.close()
        sender.cancel()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Rejected actions carry a human-readable reason and change nothing."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=exc.detail).model_dump(),
    )


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


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
