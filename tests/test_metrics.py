"""Tests for metrics and telemetry."""
import asyncio
import time
import pytest
from httpx import AsyncClient, ASGITransport
from prometheus_client import CollectorRegistry
from metaconfig.main import app
from metaconfig.catalog.memory import InMemoryCatalogSource
from metaconfig.catalog.models import CatalogItem
from metaconfig.catalog.registry import catalogs
from metaconfig.metrics.collector import (
    APPLY_LATENCY_MS,
    CONFIGURATIONS_MATCHED_TOTAL,
    EVENTS_HANDLED_TOTAL,
    ITEMS_APPLIED_TOTAL,
    MetricsCollector,
    collector,
)
from metaconfig.metrics.prometheus import Metrics


@pytest.mark.asyncio
async def test_stats_endpoint_exists():
    """Test that /v1/stats is accessible."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/stats")
        assert response.status_code == 200
        data = response.json()
        assert "uptime_seconds" in data
        assert "counters" in data
        assert "histograms" in data


@pytest.mark.asyncio
async def test_counter_increment():
    """Test counter increment functionality."""
    test_collector = MetricsCollector()

    test_collector.increment("test_counter")
    test_collector.increment("test_counter")
    test_collector.increment("test_counter", value=3)

    assert test_collector.get_metrics()["counters"]["test_counter"] == 5
    assert test_collector.counter("test_counter") == 5
    assert test_collector.counter("never_seen") == 0


@pytest.mark.asyncio
async def test_counter_with_labels():
    """Test counter with labels."""
    test_collector = MetricsCollector()

    test_collector.increment("events", labels={"event_type": "created", "tenant": "a"})
    test_collector.increment("events", labels={"tenant": "a", "event_type": "updated"})
    test_collector.increment("events", labels={"event_type": "created", "tenant": "a"})

    metrics = test_collector.get_metrics()
    assert metrics["counters"]["events{event_type=created,tenant=a}"] == 2
    assert metrics["counters"]["events{event_type=updated,tenant=a}"] == 1
    assert test_collector.counter("events", labels={"tenant": "a", "event_type": "created"}) == 2


@pytest.mark.asyncio
async def test_histogram_recording():
    """Test histogram value recording."""
    test_collector = MetricsCollector()

    test_collector.histogram("latency", 10.5)
    test_collector.histogram("latency", 20.0)
    test_collector.histogram("latency", 15.5)

    stats = test_collector.get_metrics()["histograms"]["latency"]

    assert stats["count"] == 3
    assert stats["sum"] == 46.0
    assert stats["min"] == 10.5
    assert stats["max"] == 20.0
    assert abs(stats["avg"] - 15.33) < 0.01


@pytest.mark.asyncio
async def test_latency_recording():
    """Test latency recording."""
    test_collector = MetricsCollector()

    start_time = time.time()
    await asyncio.sleep(0.01)
    test_collector.record_latency("operation_latency", start_time)

    stats = test_collector.get_metrics()["histograms"]["operation_latency"]
    assert stats["count"] == 1
    assert stats["min"] >= 10


@pytest.mark.asyncio
async def test_metrics_reset():
    """Test metrics reset functionality."""
    test_collector = MetricsCollector()

    test_collector.increment("counter", value=10)
    test_collector.histogram("hist", 100.0)

    test_collector.reset()

    metrics = test_collector.get_metrics()
    assert len(metrics["counters"]) == 0
    assert len(metrics["histograms"]) == 0


@pytest.mark.asyncio
async def test_pipeline_metrics():
    """Test that item events and bulk apply feed the global collector."""
    collector.reset()
    tenant = "metrics.myshopify.com"
    item = CatalogItem(id="gid://shopify/Product/1", title="Shirt", vendor="Acme")
    catalogs.register(tenant, InMemoryCatalogSource(items=[item]))
    fields = [{"namespace": "custom", "key": "warranty", "value": "2 years", "value_type": "scalar"}]

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        created = await client.post(
            "/v1/configurations",
            json={"metadata_fields": fields, "rules": [{"ref": "1", "kind": "vendor", "match_value": "Acme"}]},
            headers={"X-Shop-Domain": tenant},
        )
        await client.post(
            f"/v1/configurations/{created.json()['id']}/apply",
            headers={"X-Shop-Domain": tenant},
        )
        await client.post(
            "/v1/events",
            json={"event_type": "updated", "tenant": tenant, "item": item.model_dump(mode="json")},
        )

        data = (await client.get("/v1/stats")).json()

    assert data["counters"][ITEMS_APPLIED_TOTAL] == 1
    assert data["counters"][CONFIGURATIONS_MATCHED_TOTAL] == 1
    assert data["counters"][f"{EVENTS_HANDLED_TOTAL}{{event_type=updated}}"] == 1
    assert data["histograms"][APPLY_LATENCY_MS]["count"] == 1


def test_prometheus_business_metrics():
    metrics = Metrics(service_name="metaconfig-test", registry=CollectorRegistry())

    metrics.record_bulk_apply(successful=3, failed=1, duration_seconds=0.25)
    metrics.record_item_event("created", applied=2, failed=1)

    registry = metrics.registry
    assert registry.get_sample_value(
        "metaconfig_items_written_total", {"outcome": "success"}
    ) == 3
    assert registry.get_sample_value(
        "metaconfig_items_written_total", {"outcome": "failure"}
    ) == 1
    assert registry.get_sample_value(
        "metaconfig_item_events_total", {"event_type": "created"}
    ) == 1
    assert registry.get_sample_value(
        "metaconfig_configurations_applied_total", {"outcome": "failure"}
    ) == 1
    assert registry.get_sample_value(
        "metaconfig_bulk_apply_duration_seconds_count", {}
    ) == 1


@pytest.mark.asyncio
async def test_uptime_tracking():
    """Test that uptime is tracked."""
    test_collector = MetricsCollector()

    await asyncio.sleep(0.1)

    assert test_collector.get_metrics()["uptime_seconds"] >= 0.1
