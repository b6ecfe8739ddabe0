"""Tests for the windowed consumption engine."""

import itertools
import threading
from collections import Counter

import pytest
from kafka.errors import KafkaError, OffsetOutOfRangeError, UnknownTopicOrPartitionError

from topic_browser.core.exceptions import (
    AssignmentFailed,
    ConsumerCreationFailed,
    DeliveryError,
    FetchFailed,
    TopicNotFound,
)
from topic_browser.domain.services.consumption_engine import (
    DELIVERY_ERROR_MARKER,
    WindowedConsumptionEngine,
    decode_payload,
)


class TestDecodePayload:
    """Test decode_payload."""

    def test_utf8(self):
        assert decode_payload('{"id": "ü"}'.encode()) == '{"id": "ü"}'

    def test_tombstone(self):
        assert decode_payload(None) == ""

    def test_invalid_utf8(self):
        with pytest.raises(DeliveryError):
            decode_payload(b"\xff\xfe\x00")


class TestConsume:
    """Test WindowedConsumptionEngine.consume."""

    def test_orders_window(self, cluster, engine):
        result = engine.consume("orders", "ui", {0: 45, 1: 25})

        assert len(result.messages) == 10
        assert result.progress == {0: 49, 1: 29}
        by_partition = {
            p: sorted(m.offset for m in result.messages if m.partition == p) for p in (0, 1)
        }
        assert by_partition == {0: [45, 46, 47, 48, 49], 1: [25, 26, 27, 28, 29]}
        first = next(m for m in result.messages if m.offset == 45)
        assert first.payload == "orders-0-45"
        assert first.timestamp == 1_600_000_000_045

    def test_consumer_is_assigned_and_released(self, cluster, engine):
        engine.consume("orders", "ui", {0: 45, 1: 25})

        assert cluster.method_calls("new_consumer") == ["ui"]
        (consumer,) = cluster.consumers
        assert sorted(tp.partition for tp in consumer.assigned) == [0, 1]
        assert consumer.closed
        assert consumer.close_autocommit is False
        assert sorted(tp.partition for tp in consumer.paused) == [0, 1]

    def test_commits_after_each_record(self, cluster, engine):
        engine.consume("orders", "ui", {0: 45, 1: 25})

        assert cluster.consumers[0].commits == 10

    def test_window_caps_records_per_partition(self, cluster, engine):
        cluster.add_topic("big", [100])

        result = engine.consume("big", "ui", {0: 0})

        assert [m.offset for m in result.messages] == list(range(0, 21))
        assert result.progress == {0: 20}

    def test_gap_at_limit_stops_partition(self, cluster, engine):
        # offset 9 was compacted away; later records must not keep the read going
        cluster.add_topic("compacted", [400])
        cluster.logs["compacted"][0] = [r for r in cluster.logs["compacted"][0] if r.offset != 9]
        cluster.watermark_overrides[("compacted", 0)] = (0, 10)

        result = engine.consume("compacted", "ui", {0: 0})

        assert [m.offset for m in result.messages] == list(range(0, 9))
        assert result.progress == {0: 9}
        (consumer,) = cluster.consumers
        assert [tp.partition for tp in consumer.paused] == [0]
        assert consumer.polls == 3

    def test_gap_at_limit_then_next_call_is_satisfied(self, cluster, engine):
        cluster.add_topic("compacted", [400])
        cluster.logs["compacted"][0] = [r for r in cluster.logs["compacted"][0] if r.offset != 9]
        cluster.watermark_overrides[("compacted", 0)] = (0, 10)

        first = engine.consume("compacted", "ui", {0: 0})
        second = engine.consume("compacted", "ui", first.progress)

        assert second.messages == []
        assert second.progress == {0: 10}

    @pytest.mark.parametrize("offsets", [{0: 0, 1: 0}, {0: 10, 1: 29}, {0: 31, 1: 5}, {0: -4}])
    def test_records_never_exceed_window(self, cluster, engine, settings, offsets):
        result = engine.consume("orders", "ui", offsets)

        counts = Counter(m.partition for m in result.messages)
        for partition, requested in offsets.items():
            high = {0: 50, 1: 30}[partition]
            floor = max(0, requested)
            limit = min(high - 1, requested + settings.window_size)
            assert counts[partition] <= max(0, limit - floor + 1)
            assert all(floor <= m.offset <= limit for m in result.messages if m.partition == partition)

    def test_satisfied_partitions_skip_the_consumer(self, cluster, engine):
        result = engine.consume("orders", "ui", {0: 49, 1: 120})

        assert result.messages == []
        assert result.progress == {0: 50, 1: 30}
        assert cluster.method_calls("new_consumer") == []

    def test_mixed_satisfied_and_active(self, cluster, engine):
        result = engine.consume("orders", "ui", {0: 49, 1: 27})

        assert [m.offset for m in result.messages] == [27, 28, 29]
        assert result.progress == {0: 50, 1: 29}
        (consumer,) = cluster.consumers
        assert [tp.partition for tp in consumer.assigned] == [1]

    def test_unrequested_partitions_are_not_reported(self, engine):
        result = engine.consume("orders", "ui", {1: 25})

        assert set(result.progress) == {1}
        assert {m.partition for m in result.messages} == {1}

    def test_same_request_same_result(self, engine):
        first = engine.consume("orders", "ui", {0: 45, 1: 25})
        second = engine.consume("orders", "ui", {0: 45, 1: 25})

        assert sorted(first.messages, key=lambda m: (m.partition, m.offset)) == sorted(
            second.messages, key=lambda m: (m.partition, m.offset)
        )
        assert first.progress == second.progress

    def test_malformed_payload_does_not_block_batch(self, cluster, engine):
        cluster.set_value("orders", 0, 47, b"\xff\xfe\x00")

        result = engine.consume("orders", "ui", {0: 45, 1: 25})

        assert len(result.messages) == 10
        markers = [m for m in result.messages if m.payload == DELIVERY_ERROR_MARKER]
        assert [(m.partition, m.offset) for m in markers] == [(0, 47)]
        assert result.progress == {0: 49, 1: 29}

    def test_tombstone_payload_is_empty(self, cluster, engine):
        cluster.set_value("orders", 1, 26, None)

        result = engine.consume("orders", "ui", {1: 25})

        assert next(m for m in result.messages if m.offset == 26).payload == ""

    def test_exhausted_early_reports_last_seen_offset(self, cluster, engine):
        # watermark claims more data than the log delivers
        cluster.watermark_overrides[("orders", 0)] = (0, 60)

        result = engine.consume("orders", "ui", {0: 45})

        assert [m.offset for m in result.messages] == [45, 46, 47, 48, 49]
        assert result.progress == {0: 49}
        assert cluster.consumers[0].closed

    def test_exhausted_without_records_reports_floor(self, cluster, engine):
        cluster.watermark_overrides[("payments", 0)] = (0, 30)

        result = engine.consume("payments", "ui", {0: 20})

        assert result.messages == []
        assert result.progress == {0: 20}

    def test_commit_failure_is_not_fatal(self, cluster, engine):
        cluster.consumer_setup = lambda c: setattr(c, "commit_error", KafkaError("coordinator not available"))

        result = engine.consume("orders", "ui", {0: 45, 1: 25})

        assert len(result.messages) == 10
        assert cluster.consumers[0].commits == 10

    def test_unknown_topic(self, cluster, engine):
        with pytest.raises(TopicNotFound):
            engine.consume("ghost", "ui", {0: 0})

        assert cluster.method_calls("new_consumer") == []

    def test_unknown_partition(self, cluster, engine):
        with pytest.raises(AssignmentFailed):
            engine.consume("orders", "ui", {9: 0})

        assert cluster.method_calls("new_consumer") == []

    def test_consumer_creation_failure(self, cluster, engine):
        cluster.consumer_error = ConsumerCreationFailed("Cannot create consumer: NoBrokersAvailable")

        with pytest.raises(ConsumerCreationFailed):
            engine.consume("orders", "ui", {0: 45})

    def test_assignment_failure_releases_consumer(self, cluster, engine):
        cluster.consumer_setup = lambda c: setattr(c, "assign_error", UnknownTopicOrPartitionError("orders[0]"))

        with pytest.raises(AssignmentFailed):
            engine.consume("orders", "ui", {0: 45})

        assert cluster.consumers[0].closed

    def test_fetch_failure_releases_consumer(self, cluster, engine):
        cluster.consumer_setup = lambda c: setattr(c, "poll_error", KafkaError("broker went away"))

        with pytest.raises(FetchFailed):
            engine.consume("orders", "ui", {0: 45})

        assert cluster.consumers[0].closed

    def test_offset_out_of_range_is_assignment_failure(self, cluster, engine):
        cluster.consumer_setup = lambda c: setattr(c, "poll_error", OffsetOutOfRangeError("orders[0]@45"))

        with pytest.raises(AssignmentFailed):
            engine.consume("orders", "ui", {0: 45})

        assert cluster.consumers[0].closed

    def test_cancelled_read_releases_consumer(self, cluster, engine):
        cancel = threading.Event()
        cancel.set()

        result = engine.consume("orders", "ui", {0: 45}, cancel=cancel)

        assert result.messages == []
        assert result.progress == {0: 45}
        assert cluster.consumers[0].closed
        assert cluster.consumers[0].polls == 0

    def test_wall_clock_ceiling(self, cluster, resolver, settings):
        ticks = itertools.count(0.0, 100.0)
        engine = WindowedConsumptionEngine(cluster, resolver, settings, clock=lambda: next(ticks))

        result = engine.consume("orders", "ui", {0: 45}, timeout=5.0)

        assert result.messages == []
        assert cluster.consumers[0].polls == 0
        assert cluster.consumers[0].closed


class TestTail:
    """Test WindowedConsumptionEngine.tail."""

    def test_reads_latest_window(self, engine):
        result = engine.tail("orders", "ui")

        offsets = {p: sorted(m.offset for m in result.messages if m.partition == p) for p in (0, 1)}
        assert offsets == {0: list(range(30, 50)), 1: list(range(10, 30))}
        assert result.progress == {0: 49, 1: 29}

    def test_small_partition_reads_from_low(self, engine):
        result = engine.tail("payments", "ui")

        assert [m.offset for m in result.messages] == list(range(0, 10))

    def test_skips_unreadable_partitions(self, cluster, engine):
        cluster.failing_watermarks.add(("orders", 0))

        result = engine.tail("orders", "ui")

        assert {m.partition for m in result.messages} == {1}
        assert set(result.progress) == {1}
