import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from app.middlewares.trust_proxies import TrustedProxiesMiddleware, client_ip_from_forwarded


@pytest.mark.parametrize(
    "header, proxies, expected",
    [
        ("198.51.100.1, 10.0.0.1", 1, "198.51.100.1"),
        ("203.0.113.4, 198.51.100.1, 10.0.0.1", 2, "203.0.113.4"),
        ("203.0.113.4, 198.51.100.1, 10.0.0.1", 1, "198.51.100.1"),
        ("10.0.0.1", 1, None),
        (" , 10.0.0.1", 1, None),
        ("198.51.100.1, 10.0.0.1", 0, None),
    ],
)
def test_client_ip_from_forwarded(header, proxies, expected):
    assert client_ip_from_forwarded(header, proxies) == expected


def _echo_client(request: Request) -> PlainTextResponse:
    return PlainTextResponse(request.client.host)


def _client(proxies_count: int) -> TestClient:
    app = Starlette(routes=[Route("/", _echo_client)])
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=proxies_count)
    return TestClient(app)


def test_middleware_rewrites_client_address():
    resp = _client(1).get("/", headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
    assert resp.text == "198.51.100.1"


def test_short_chain_keeps_socket_address():
    resp = _client(2).get("/", headers={"X-Forwarded-For": "198.51.100.1"})
    assert resp.text == "testclient"


def test_disabled_when_no_proxies_trusted():
    resp = _client(0).get("/", headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
    assert resp.text == "testclient"
