"""Tests for the Prometheus metrics endpoint and copy counters."""

import pytest
from prometheus_client import REGISTRY
from httpx import ASGITransport, AsyncClient

from partcopy.partstore.memory import MemoryPartStore
from partcopy.server import attach_components, create_app
from partcopy.transport.memory import MemoryMessageQueue

from conftest import SOURCE_BUCKET, SOURCE_KEY


@pytest.fixture
async def metrics_app(config, source, destination):
    config.observability.metrics = True
    application = create_app(config)
    # Collectors registered from here on belong to this app's middleware
    # (built on first request); drop them at teardown so the next test's
    # app can register its own in the global registry.
    registered_before = set(REGISTRY._collector_to_names)
    store = MemoryPartStore()
    queue = MemoryMessageQueue()
    await store.init_db()
    await queue.init()
    attach_components(application, config, store, queue, source, destination)
    yield application
    await queue.close()
    await store.close()
    for collector in set(REGISTRY._collector_to_names) - registered_before:
        REGISTRY.unregister(collector)


@pytest.fixture
async def metrics_client(metrics_app):
    transport = ASGITransport(app=metrics_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


def _sample(body: str, name: str) -> float:
    for line in body.splitlines():
        if line.startswith(name + " "):
            return float(line.split()[1])
    raise AssertionError(f"{name} not found")


class TestMetricsEndpoint:

    async def test_metrics_returns_prometheus_text(self, metrics_client):
        resp = await metrics_client.get("/metrics")
        assert resp.status_code == 200
        assert "text/plain" in resp.headers.get("content-type", "")

    async def test_copy_counters_registered(self, metrics_client):
        body = (await metrics_client.get("/metrics")).text
        for name in (
            "partcopy_messages_total",
            "partcopy_parts_copied_total",
            "partcopy_bytes_copied_total",
            "partcopy_sessions_started_total",
            "partcopy_sessions_completed_total",
        ):
            assert name in body

    async def test_counters_advance_with_a_copy(self, metrics_client, metrics_app):
        before = (await metrics_client.get("/metrics")).text

        await metrics_client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})
        await metrics_app.state.workers.run_until_idle()

        after = (await metrics_client.get("/metrics")).text
        for name, delta in (
            ("partcopy_sessions_started_total", 1),
            ("partcopy_sessions_completed_total", 1),
            ("partcopy_parts_copied_total", 3),
            ("partcopy_bytes_copied_total", 2500),
        ):
            assert _sample(after, name) - _sample(before, name) == delta

    async def test_disabled_metrics_has_no_endpoint(self, client):
        resp = await client.get("/metrics")
        assert resp.status_code in (404, 405)
