"""Shared fixtures: an in-memory hosting origin served through httpx.MockTransport."""

from __future__ import annotations

from typing import Any, Callable, Dict

import httpx
import pytest

BASE = "https://texts.example.org"


def _respond(value: Any, request: httpx.Request) -> httpx.Response:
    if callable(value):
        return value(request)
    if isinstance(value, httpx.Response):
        return value
    if isinstance(value, (dict, list)):
        return httpx.Response(200, json=value)
    if isinstance(value, bytes):
        return httpx.Response(200, content=value)
    return httpx.Response(200, text=value)


def make_transport(routes: Dict[str, Any], calls: list | None = None) -> httpx.MockTransport:
    """Serve ``routes`` (url -> body, response or callable); anything else is a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        if url not in routes:
            return httpx.Response(404, text="not found")
        return _respond(routes[url], request)

    return httpx.MockTransport(handler)


def connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def read_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture
def client_factory() -> Callable[..., httpx.AsyncClient]:
    def factory(routes: Dict[str, Any], calls: list | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=make_transport(routes, calls))

    return factory
