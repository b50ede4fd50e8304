"""
Unit tests for HttpxResourceFetcher adapter.

Requests are served by httpx.MockTransport; no network access.
"""

import httpx
import pytest

from trust_engine.adapters.http.fetcher import HttpxResourceFetcher
from trust_engine.domain.exceptions import ExternalFetchError, ExternalFetchTimeout


def fetcher_for(handler, max_bytes: int = 1_000_000) -> HttpxResourceFetcher:
    return HttpxResourceFetcher(max_bytes=max_bytes, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestFetchResource:
    def test_returns_status_and_body(self) -> None:
        fetcher = fetcher_for(lambda request: httpx.Response(200, text="ccr-token"))

        response = fetcher.fetch_resource("https://acme.example.com/.well-known/crosschain-registry.txt")

        assert response.ok
        assert response.body == "ccr-token"

    def test_error_status_passed_through(self) -> None:
        fetcher = fetcher_for(lambda request: httpx.Response(500, text="boom"))

        response = fetcher.fetch_resource("https://acme.example.com/")

        assert response.status_code == 500
        assert not response.ok

    def test_body_truncated(self) -> None:
        fetcher = fetcher_for(lambda request: httpx.Response(200, content=b"x" * 100), max_bytes=10)

        response = fetcher.fetch_resource("https://acme.example.com/")

        assert response.body == "x" * 10

    def test_sends_user_agent(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["agent"] = request.headers.get("User-Agent")
            return httpx.Response(200)

        fetcher = HttpxResourceFetcher(
            client=httpx.Client(
                transport=httpx.MockTransport(handler), headers={"User-Agent": "registry-test"}
            )
        )
        fetcher.fetch_resource("https://acme.example.com/")

        assert seen["agent"] == "registry-test"


class TestFetchFailures:
    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ExternalFetchTimeout) as exc_info:
            fetcher_for(handler).fetch_resource("https://slow.example.com/page")

        assert "slow.example.com" in exc_info.value.message

    def test_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalFetchError) as exc_info:
            fetcher_for(handler).fetch_resource("https://down.example.com/")

        assert not isinstance(exc_info.value, ExternalFetchTimeout)
