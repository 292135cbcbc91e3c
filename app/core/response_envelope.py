from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

_SKIPPED_HEADERS = {"content-length", "content-type"}


def _success_code(status_code: int) -> str:
    mapping = {
        200: "ok",
        201: "created",
        202: "accepted",
    }
    return mapping.get(status_code, "ok")


def _success_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Success"


def build_success_envelope(data: Any, status_code: int = 200) -> dict[str, Any]:
    return {
        "code": _success_code(status_code),
        "message": _success_message(status_code),
        "data": data,
        "details": {},
    }


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return "code" in payload and "message" in payload and ("data" in payload or "details" in payload)


def _rewrap(original: Response, content: dict[str, Any], status_code: int) -> JSONResponse:
    wrapped = JSONResponse(status_code=status_code, content=content)
    for key, value in original.headers.items():
        if key.lower() in _SKIPPED_HEADERS:
            continue
        wrapped.headers[key] = value
    return wrapped


async def _read_body(response: Response) -> bytes | None:
    body = getattr(response, "body", None)
    if body is not None:
        return body
    iterator = getattr(response, "body_iterator", None)
    if iterator is None:
        return None
    chunks = [chunk async for chunk in iterator]
    return b"".join(chunks)


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    """Wrap successful JSON payloads as ``{code, message, data, details}``."""

    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code < 200 or response.status_code >= 300:
            return response

        if response.status_code == 204:
            return _rewrap(response, build_success_envelope(None, 200), 200)

        if not response.headers.get("content-type", "").startswith("application/json"):
            return response

        raw = await _read_body(response)
        try:
            payload = json.loads(raw.decode("utf-8")) if raw else None
        except (UnicodeDecodeError, json.JSONDecodeError):
            return Response(
                content=raw,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )

        if _is_enveloped(payload):
            normalized = dict(payload)
            normalized.setdefault("data", None)
            normalized.setdefault("details", {})
            return _rewrap(response, normalized, response.status_code)

        return _rewrap(response, build_success_envelope(payload, response.status_code), response.status_code)


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
