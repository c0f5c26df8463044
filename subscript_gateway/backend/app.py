"""
Backend HTTP Application

FastAPI app exposing the auth/sync routes under /api and relaying every
other path to the inference vendor.

Response contract:
- Every /api route answers with {"success": bool, "data"?: ..., "error"?: str}
- OPTIONS on any path answers 204 with permissive CORS headers, before routing
- Every other response carries Access-Control-Allow-Origin: *
- A handler never lets an exception escape: unexpected errors become a 500
  envelope carrying the exception message
"""

import json
from typing import Awaitable, Callable, Optional

import httpx
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from subscript_gateway import __version__
from subscript_gateway.backend.relay import PREFLIGHT_HEADERS, VendorRelay
from subscript_gateway.backend.service import (
    AuthGatewayService,
    HandlerError,
    InvalidRequestError,
    parse_auth_request,
)
from subscript_gateway.config import BackendSettings, get_settings
from subscript_gateway.models.audit import AuditEventBuilder
from subscript_gateway.models.backend import ApiEnvelope, LoginData
from subscript_gateway.services.errors import ConfigurationError
from subscript_gateway.services.storage import KeyValueStore


logger = structlog.get_logger(__name__)

RELAY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]


def envelope_response(envelope: ApiEnvelope, status_code: int = 200) -> JSONResponse:
    return JSONResponse(envelope.to_body(), status_code=status_code)


def error_response(message: str, status_code: int) -> JSONResponse:
    return envelope_response(ApiEnvelope(success=False, error=message), status_code)


async def read_json_body(request: Request):
    """
    Parse the request body as JSON.

    Raises:
        InvalidRequestError: If the body is empty or not JSON
    """
    raw = await request.body()
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidRequestError("Request body must be valid JSON")


def create_app(
    store: Optional[KeyValueStore] = None,
    settings: Optional[BackendSettings] = None,
    relay_transport: Optional[httpx.AsyncBaseTransport] = None,
    audit_logger=None,
) -> FastAPI:
    """
    Build the backend application.

    Args:
        store: Key-value store; None leaves every /api route answering 500
        settings: Backend settings (defaults to the environment)
        relay_transport: httpx transport for the relay (tests)
        audit_logger: Optional AuditLogger
    """
    settings = settings or get_settings().backend

    service = AuthGatewayService(
        store,
        session_ttl_seconds=settings.session_ttl_seconds,
        min_username_length=settings.min_username_length,
        audit_logger=audit_logger,
    )
    relay = VendorRelay(
        settings.relay_target_host,
        timeout=settings.relay_timeout_seconds,
        transport=relay_transport,
    )

    app = FastAPI(title="SubScript Gateway Backend", version=__version__)
    app.state.service = service
    app.state.relay = relay

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=PREFLIGHT_HEADERS)
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    async def dispatch(
        route: str,
        handler: Callable[[], Awaitable[Response]],
    ) -> Response:
        """Run a route handler; every failure becomes an envelope."""
        try:
            # Missing store is reported on every route, before input checks
            service.require_store()
            return await handler()
        except HandlerError as e:
            return error_response(str(e), e.status_code)
        except ConfigurationError as e:
            logger.warning("handler_not_configured", route=route, error=str(e))
            return error_response(str(e), 500)
        except Exception as e:
            logger.exception("handler_failed", route=route, error_type=type(e).__name__)
            if audit_logger:
                await audit_logger.log(AuditEventBuilder.handler_error(
                    route=route,
                    error_type=type(e).__name__,
                    error_message=str(e),
                ))
            return error_response(str(e) or type(e).__name__, 500)

    @app.post("/api/auth/register")
    async def register(request: Request) -> Response:
        async def handle() -> Response:
            auth = parse_auth_request(await read_json_body(request))
            await service.register(auth)
            return envelope_response(ApiEnvelope(success=True))

        return await dispatch("/api/auth/register", handle)

    @app.post("/api/auth/login")
    async def login(request: Request) -> Response:
        async def handle() -> Response:
            auth = parse_auth_request(await read_json_body(request))
            session = await service.login(auth)
            data = LoginData(token=session.token).model_dump()
            return envelope_response(ApiEnvelope(success=True, data=data))

        return await dispatch("/api/auth/login", handle)

    @app.post("/api/sync/push")
    async def push(request: Request) -> Response:
        async def handle() -> Response:
            await service.push(request.headers.get("authorization"), await request.body())
            return envelope_response(ApiEnvelope(success=True))

        return await dispatch("/api/sync/push", handle)

    @app.get("/api/sync/pull")
    async def pull(request: Request) -> Response:
        async def handle() -> Response:
            stored = await service.pull(request.headers.get("authorization"))
            # Stored text is spliced in as-is so pull returns the pushed bytes
            content = '{"success":true,"data":' + (stored if stored is not None else "null") + "}"
            return Response(content=content, media_type="application/json")

        return await dispatch("/api/sync/pull", handle)

    @app.api_route("/{path:path}", methods=RELAY_METHODS)
    async def relay_or_not_found(path: str, request: Request) -> Response:
        if path == "api" or path.startswith("api/"):
            async def not_found() -> Response:
                return error_response("Not found", 404)

            return await dispatch(f"/{path}", not_found)

        return await relay.forward(
            request.method,
            path,
            request.url.query,
            await request.body(),
        )

    return app
