# app/main.py
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.batches import router as batches_router
from app.api.deliveries import router as deliveries_router
from app.api.elements import router as elements_router
from app.api.health import router as health_router
from app.api.scan import router as scan_router
from app.core.config import settings
from app.core.errors import LifecycleError
from app.core.logging import configure_logging

configure_logging()
logger = structlog.get_logger(__name__)

# OpenAPI must reflect headers-only auth context.
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    description=settings.api_description,
)

OPEN_PATHS = {"/docs", "/openapi.json", "/redoc", "/favicon.ico", "/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            role=request.headers.get("X-Role"),
        )

        try:
            response = await call_next(request)
            logger.info("request_completed", status_code=response.status_code)
            return response
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


@app.middleware("http")
async def require_x_role(request: Request, call_next):
    if request.url.path in OPEN_PATHS:
        return await call_next(request)

    x_role = request.headers.get("X-Role")
    if not x_role or not x_role.strip():
        return JSONResponse(
            status_code=401,
            content={"detail": "Missing X-Role header"},
        )

    return await call_next(request)


app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    if exc.http_status >= 500:
        logger.error("lifecycle_storage_failure", code=exc.code, params=exc.to_dict(), exc_info=exc)
    else:
        logger.info("lifecycle_rejected", code=exc.code, path=request.url.path)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    # input checks inside services (blank names, over-long notes, ...)
    return JSONResponse(status_code=422, content={"detail": str(exc), "code": "validation_error"})


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    # Headers-only auth context: document required headers via apiKey schemes.
    schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schemes = schema["components"]["securitySchemes"]

    schemes["XRole"] = {
        "type": "apiKey",
        "in": "header",
        "name": "X-Role",
        "description": "MVP RBAC: actor role (admin, factory_manager, driver, buyer).",
    }

    schemes["XActorUserId"] = {
        "type": "apiKey",
        "in": "header",
        "name": "X-Actor-User-Id",
        "description": "Actor user id (UUID). Required for protected endpoints.",
    }

    # Apply globally (AND): both headers are required for protected endpoints.
    schema["security"] = [{"XRole": [], "XActorUserId": []}]

    # Public endpoints: no security requirement.
    for path in ["/health"]:
        if path in schema.get("paths", {}):
            for _method, op in schema["paths"][path].items():
                if isinstance(op, dict):
                    op["security"] = []

    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

app.include_router(health_router, tags=["health"])
app.include_router(elements_router, tags=["elements"])
app.include_router(batches_router, tags=["batches"])
app.include_router(deliveries_router, tags=["deliveries"])
app.include_router(scan_router, tags=["scan"])
