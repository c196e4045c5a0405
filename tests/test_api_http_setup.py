from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from starter.api.errors import unauthorized
from starter.api.http_setup import register_exception_handlers, register_http_middleware
from starter.core.config import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    SecurityConfig,
)

LOGGER = logging.getLogger(__name__)


def _config() -> AppConfig:
    return AppConfig(
        auth=AuthConfig(
            access_secret="access",
            refresh_secret="refresh",
            access_token_ttl_seconds=900,
            refresh_token_ttl_seconds=3600,
            issuer="test",
        ),
        database=DatabaseConfig(url="sqlite:///:memory:"),
        scheduler=SchedulerConfig(enabled=False, token_cleanup_interval_seconds=60),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=8,
        ),
    )


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _app() -> FastAPI:
    app = FastAPI()
    register_http_middleware(app, config=_config(), logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def test_http_setup_adds_security_headers_and_request_id() -> None:
    dispatch = _dispatch_by_name(_app(), "request_logging_middleware")
    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_http_setup_rejects_large_request_before_handler() -> None:
    dispatch = _dispatch_by_name(_app(), "request_size_limit_middleware")
    request = _request("/echo", method="POST", headers=[(b"content-length", b"20")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.status_code == 413
    assert b"REQUEST_TOO_LARGE" in response.body


def test_http_setup_serializes_http_exception_payload() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/not-found"),
            HTTPException(
                status_code=404,
                detail={"error_code": "USER_NOT_FOUND", "message": "missing"},
            ),
        )
    )
    assert response.status_code == 404
    assert json.loads(response.body) == {"error_code": "USER_NOT_FOUND", "message": "missing"}


def test_http_setup_keeps_exception_headers() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(_request("/auth/me"), unauthorized("Missing bearer token"))
    )
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_http_setup_hides_unexpected_exception_details() -> None:
    handler = _app().exception_handlers[Exception]
    response: Response = _resolve_response(
        handler(_request("/boom"), RuntimeError("db password is hunter2"))
    )
    assert response.status_code == 500
    assert json.loads(response.body) == {
        "error_code": "INTERNAL_SERVER_ERROR",
        "message": "Internal server error",
    }


def test_http_setup_maps_validation_exception_to_400() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    error = RequestValidationError(
        [{"loc": ("body", "email"), "msg": "value is not a valid email address", "type": "value_error"}]
    )
    response: Response = _resolve_response(handler(_request("/validation"), error))
    payload = json.loads(response.body)
    assert response.status_code == 400
    assert payload["error_code"] == "VALIDATION_ERROR"
    assert payload["message"] == "email: value is not a valid email address"
