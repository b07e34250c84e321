from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.core.deps import get_tenant_id
from src.core.logging import configure_logging, correlation_id_var, tenant_id_var
from src.core.security import ACCESS_TOKEN_TYPE, decode_token
from src.core.settings import get_app_settings
from src.db.run_migrations import main as run_alembic
from src.db.seed import seed_all
from src.db.session import tenant_session
from src.integrations.multikassa import multikassa_client
from src.schemas.common import ErrorInfo, ErrorResponse, MessageResponse, TenantEcho
from src.services.machines import MachineService
from src.services.realtime import broadcast_manager

from src.api.routes.auth import router as auth_router
from src.api.routes.users import router as users_router
from src.api.routes.roles import router as roles_router
from src.api.routes.machines import router as machines_router
from src.api.routes.products import router as products_router
from src.api.routes.inventory import router as inventory_router
from src.api.routes.promo import router as promo_router
from src.api.routes.orders import router as orders_router
from src.api.routes.payments import router as payments_router
from src.api.routes.fiscal import router as fiscal_router
from src.api.routes.contracts import router as contracts_router
from src.api.routes.maintenance import router as maintenance_router
from src.api.routes.reports import router as reports_router

configure_logging()
logger = logging.getLogger(__name__)

settings = get_app_settings()

openapi_tags = [
    {"name": "Health", "description": "Liveness and tenant echo probes."},
    {"name": "Auth", "description": "Registration, login and token refresh."},
    {"name": "Users", "description": "User administration and role assignment."},
    {"name": "Roles", "description": "Roles and permission grants."},
    {"name": "Machines", "description": "Vending machines, slots, telemetry and error logs."},
    {"name": "Products", "description": "Product catalogue and price history."},
    {"name": "Inventory", "description": "Three-level stock: warehouse, operators and machines."},
    {"name": "Promo codes", "description": "Discount codes, validation and redemptions."},
    {"name": "Orders", "description": "Customer orders and their lifecycle."},
    {"name": "Payments", "description": "Payme, Click and Uzum checkout, callbacks and refunds."},
    {"name": "Fiscal", "description": "MultiKassa devices, shifts, receipts and the retry queue."},
    {"name": "Contracts", "description": "Contractors, location contracts and commissions."},
    {"name": "Maintenance", "description": "Maintenance requests, work logs and schedules."},
    {"name": "Reports", "description": "Exportable business reports (CSV/Excel/PDF)."},
    {"name": "WebSocket", "description": "Real-time channel usage."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# Wildcard origins cannot be combined with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind correlation and tenant ids to the log context and echo X-Correlation-ID."""
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    tenant = request.headers.get("X-Tenant-ID")
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(tenant)
    request.state.correlation_id = corr
    request.state.tenant_id = tenant

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = corr
        return response
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    tenant = getattr(request.state, "tenant_id", None) or request.path_params.get("tenant_id")
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        tenant_id=str(tenant) if tenant else None,
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


def _jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the `ctx` objects pydantic attaches, which are not JSON."""
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Raised HTTPExceptions and router 404/405s share the error envelope."""
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    response = _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=_jsonable_errors(exc),
    )


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    """Unique and foreign key violations that slipped past service checks."""
    logger.warning("Integrity error: %s", exc.orig)
    return _build_error_response(
        request=request,
        status_code=409,
        error_type="conflict",
        message="The request conflicts with existing data",
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all so stack traces never reach clients."""
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
    )


@app.on_event("startup")
async def on_startup() -> None:
    """Optional migrations and seeding; failures are logged and the service still starts."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            # env.py drives its own event loop
            await run_in_threadpool(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception:
            logger.exception("Migration step failed")

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception:
            logger.exception("Seeding step failed")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await multikassa_client.aclose()


api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health", response_model=MessageResponse, response_model_exclude_none=True, summary="Health Check", tags=["Health"]
)
def health_check() -> MessageResponse:
    """Basic liveness check."""
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/tenant",
    response_model=TenantEcho,
    summary="Tenant Health Echo",
    description="Echoes the tenant context to verify header handling and RLS setup.",
    tags=["Health"],
)
async def tenant_health_echo(tenant_id=Depends(get_tenant_id)) -> TenantEcho:
    return TenantEcho(tenant_id=tenant_id)


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Connection details for the real-time channels, which OpenAPI cannot describe.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    return {
        "usage": (
            "Connect with a valid user JWT as a 'token' query parameter and include the 'X-Tenant-ID' header. "
            "Send the text 'ping' to receive 'pong'. Server messages are JSON envelopes: "
            "{ type: string, payload: object, at: ISO-8601, user_id?: string, channel?: string }."
        ),
        "security": {
            "token": "JWT must contain 'sub' (user id) and 'tenant_id' matching the X-Tenant-ID header.",
            "header": "X-Tenant-ID: UUID",
            "close_codes": {"4401": "missing or invalid token", "4403": "tenant mismatch"},
        },
        "endpoints": [
            {
                "path": "/ws/machines",
                "summary": "Machine fleet updates for the tenant.",
                "query": ["token"],
                "headers": ["X-Tenant-ID"],
                "messages": {
                    "client_to_server": ["ping"],
                    "server_to_client": [
                        "machines.snapshot",
                        "machine.status",
                        "machine.error",
                        "machine.telemetry",
                    ],
                },
            },
            {
                "path": "/ws/orders",
                "summary": "Order lifecycle updates for the tenant.",
                "query": ["token"],
                "headers": ["X-Tenant-ID"],
                "messages": {
                    "client_to_server": ["ping"],
                    "server_to_client": ["order.created", "order.status_changed"],
                },
            },
        ],
        "notes": "WebSocket endpoints are not represented in the OpenAPI schema; refer to this endpoint for usage.",
    }


api_v1.include_router(auth_router)
api_v1.include_router(users_router)
api_v1.include_router(roles_router)
api_v1.include_router(machines_router)
api_v1.include_router(products_router)
api_v1.include_router(inventory_router)
api_v1.include_router(promo_router)
api_v1.include_router(orders_router)
api_v1.include_router(payments_router)
api_v1.include_router(fiscal_router)
api_v1.include_router(contracts_router)
api_v1.include_router(maintenance_router)
api_v1.include_router(reports_router)

app.include_router(api_v1)


def _ws_claims(websocket: WebSocket) -> Tuple[Optional[Tuple[str, str]], int]:
    """Resolve (tenant_id, user_id) from the token and header, or the close code to use."""
    token = websocket.query_params.get("token")
    tenant_id = websocket.headers.get("x-tenant-id")
    if not token or not tenant_id:
        return None, 4401
    try:
        claims = decode_token(token)
    except JWTError:
        return None, 4401
    if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return None, 4401
    user_id = claims.get("sub")
    if not user_id:
        return None, 4401
    if str(claims.get("tenant_id")) != str(tenant_id):
        return None, 4403
    return (str(tenant_id), str(user_id)), 1000


async def _accept_or_close(websocket: WebSocket) -> Optional[Tuple[str, str]]:
    await websocket.accept()
    identity, code = _ws_claims(websocket)
    if identity is None:
        await websocket.close(code=code)
    return identity


async def _pump(websocket: WebSocket, topic: str) -> None:
    """Answer pings until the client goes away; other client messages are ignored."""
    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.strip().lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Error on websocket connection for %s", topic)
    finally:
        await broadcast_manager.disconnect(topic, websocket)


# PUBLIC_INTERFACE
@app.websocket("/ws/machines")
async def ws_machines(websocket: WebSocket):
    """
    Machine status, error and telemetry events for the caller's tenant.

    A `machines.snapshot` with counts by status, online machines and slots
    needing refill is sent right after connecting.
    """
    identity = await _accept_or_close(websocket)
    if identity is None:
        return
    tenant_id, _ = identity

    topic = broadcast_manager.machines_topic(tenant_id)
    await broadcast_manager.connect(topic, websocket)
    try:
        async with tenant_session(tenant_id) as session:
            snapshot = await MachineService(session).snapshot()
        await broadcast_manager.send_machine_snapshot(websocket, snapshot)
    except Exception:
        logger.exception("Failed to send initial machines snapshot")

    await _pump(websocket, topic)


# PUBLIC_INTERFACE
@app.websocket("/ws/orders")
async def ws_orders(websocket: WebSocket):
    """Order created and status change events for the caller's tenant."""
    identity = await _accept_or_close(websocket)
    if identity is None:
        return
    tenant_id, _ = identity

    topic = broadcast_manager.orders_topic(tenant_id)
    await broadcast_manager.connect(topic, websocket)
    await _pump(websocket, topic)
