"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import httpx
import pytest
import pytest_asyncio

from msgbridge.config_loader import BridgeSettings, UpstreamSettings
from msgbridge.core.upstream import HTTPUpstreamClient
from msgbridge.main import create_app
from msgbridge.testing import FakeUpstream

UPSTREAM_BASE = "http://upstream.test/v1"


def parse_sse_events(raw: bytes | str) -> list[dict[str, Any]]:
    """Parse a Messages SSE body into [{"event": ..., "data": ...}, ...]."""
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    events = []
    for block in text.split("\n\n"):
        lines = [line for line in block.split("\n") if line]
        event_line = next((line for line in lines if line.startswith("event: ")), None)
        data_line = next((line for line in lines if line.startswith("data: ")), None)
        if event_line and data_line:
            events.append({
                "event": event_line[len("event: "):],
                "data": json.loads(data_line[len("data: "):]),
            })
    return events


async def aiter_list(items: list[Any]) -> AsyncIterator[Any]:
    """Async iterator over a list."""
    for item in items:
        yield item


@pytest.fixture(autouse=True)
def clear_bridge_env(monkeypatch):
    """Keep host environment overrides out of settings parsing."""
    for name in ("MSGBRIDGE_CONFIG", "MSGBRIDGE_HOST", "MSGBRIDGE_PORT", "PROXY_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def upstream_settings() -> UpstreamSettings:
    return UpstreamSettings(
        api_base=UPSTREAM_BASE,
        api_key="test-key",
        extra_headers={"X-Title": "msgbridge tests"},
    )


@pytest.fixture
def bridge_settings(upstream_settings) -> BridgeSettings:
    return BridgeSettings(upstream=upstream_settings)


@pytest_asyncio.fixture
async def http_upstream(fake_upstream, upstream_settings) -> AsyncIterator[HTTPUpstreamClient]:
    client = HTTPUpstreamClient(upstream_settings, transport=fake_upstream.transport())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def bridge_client(bridge_settings, http_upstream) -> AsyncIterator[httpx.AsyncClient]:
    """An httpx client talking to the bridge app, which talks to the fake upstream."""
    app = create_app(bridge_settings, upstream=http_upstream)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://bridge.test") as client:
        yield client
