"""Tests for the watermark resolver."""

import pytest

from topic_browser.core.exceptions import MetadataUnavailable, TopicNotFound


class TestResolve:
    """Test WatermarkResolver.resolve."""

    def test_resolves_every_topic(self, resolver):
        snapshots = resolver.resolve()

        assert [s.name for s in snapshots] == ["orders", "payments"]
        orders = snapshots[0]
        assert [(p.partition, p.low, p.high, p.count) for p in orders.partitions] == [
            (0, 0, 50, 50),
            (1, 0, 30, 30),
        ]
        assert orders.total_messages == 80

    def test_named_topic_returns_one(self, resolver):
        snapshots = resolver.resolve("payments")

        assert len(snapshots) == 1
        assert snapshots[0].total_messages == 10

    def test_missing_topic_returns_empty(self, resolver):
        assert resolver.resolve("ghost") == []

    def test_failed_partition_query_is_absorbed(self, cluster, resolver):
        cluster.failing_watermarks.add(("orders", 1))

        (orders,) = resolver.resolve("orders")

        p0, p1 = orders.partitions
        assert (p0.low, p0.high, p0.count) == (0, 50, 50)
        assert (p1.low, p1.high, p1.count) == (-1, -1, 0)
        assert "LeaderNotAvailable" in p1.error
        assert orders.total_messages == 50

    def test_metadata_failure_is_fatal(self, cluster, resolver):
        cluster.metadata_errors = 1

        with pytest.raises(MetadataUnavailable):
            resolver.resolve()

    def test_every_call_queries_the_cluster(self, cluster, resolver):
        resolver.resolve("orders")
        cluster.logs["orders"][0].pop(0)  # retention moved the low watermark

        (orders,) = resolver.resolve("orders")

        assert orders.partitions[0].low == 1
        assert len(cluster.method_calls("watermarks")) == 4


class TestSnapshot:
    """Test WatermarkResolver.snapshot."""

    def test_snapshot_of_existing_topic(self, resolver):
        assert resolver.snapshot("orders").name == "orders"

    def test_snapshot_of_missing_topic(self, resolver):
        with pytest.raises(TopicNotFound) as info:
            resolver.snapshot("ghost")

        assert info.value.topic == "ghost"
        assert info.value.status_code == 404
