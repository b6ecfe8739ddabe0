"""Bounded, window-limited reads from caller-chosen offsets."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional

from kafka import KafkaConsumer, TopicPartition
from kafka.errors import KafkaError, OffsetOutOfRangeError

from topic_browser.core.config import Settings
from topic_browser.core.exceptions import AssignmentFailed, DeliveryError, FetchFailed
from topic_browser.domain.models.consumption import ConsumptionPlan
from topic_browser.domain.models.message import ConsumptionResult, MessageRecord
from topic_browser.domain.models.topic import TopicSnapshot
from topic_browser.domain.services.watermark_resolver import WatermarkResolver
from topic_browser.infra.kafka.cluster import KafkaClusterClient

logger = logging.getLogger(__name__)

DELIVERY_ERROR_MARKER = "<<payload could not be decoded>>"


def decode_payload(value: Optional[bytes]) -> str:
    """Decode a record value as UTF-8; a tombstone decodes to ``""``.

    Raises
    ------
    DeliveryError
        If the bytes are not valid UTF-8.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DeliveryError(f"payload is not valid UTF-8: {exc.reason}") from exc


class WindowedConsumptionEngine:
    """
    Reads at most ``window_size`` offsets past the requested offset of each
    partition, then stops.

    Offsets come from the caller and are authoritative: the consumer is
    assigned partitions manually and seeks to them, so no group rebalance or
    committed position is involved. Commits are sent asynchronously for the
    group's benefit only. A call ends when every active partition reached its
    limit, when a poll stays empty for ``poll_timeout_ms``, when the
    wall-clock ``timeout`` passes or when ``cancel`` is set; the consumer is
    closed on every path.

    An active partition that runs dry before its limit reports the last
    offset actually read (its floor when nothing was read). One whose log
    skips over the limit offset reports the limit and stops there.
    """

    def __init__(
        self,
        client: KafkaClusterClient,
        resolver: WatermarkResolver,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._settings = settings
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Public API                                                          #
    # ------------------------------------------------------------------ #
    def consume(
        self,
        topic: str,
        group_id: str,
        offsets: Mapping[int, int],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ConsumptionResult:
        """Read the window starting at *offsets* (partition -> offset).

        Raises
        ------
        TopicNotFound, ConsumerCreationFailed, AssignmentFailed, FetchFailed
        """
        snapshot = self._resolver.snapshot(topic)
        return self._consume_snapshot(snapshot, group_id, offsets, timeout, cancel)

    def tail(
        self,
        topic: str,
        group_id: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ConsumptionResult:
        """Read the newest window of every readable partition."""
        snapshot = self._resolver.snapshot(topic)
        window = self._settings.window_size
        offsets = {
            p.partition: max(p.low, p.high - window)
            for p in snapshot.partitions
            if p.available
        }
        return self._consume_snapshot(snapshot, group_id, offsets, timeout, cancel)

    # ------------------------------------------------------------------ #
    # Internals                                                           #
    # ------------------------------------------------------------------ #
    def _consume_snapshot(
        self,
        snapshot: TopicSnapshot,
        group_id: str,
        offsets: Mapping[int, int],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> ConsumptionResult:
        timeout = self._settings.consume_timeout_sec if timeout is None else timeout
        plan = ConsumptionPlan.build(snapshot, offsets, self._settings.window_size)
        progress = plan.initial_progress()
        for pid in plan.unreadable:
            logger.warning("%s[%d]: watermarks unavailable, partition not read", snapshot.name, pid)

        if not plan.active:
            logger.debug("%s: every requested partition is already satisfied", snapshot.name)
            return ConsumptionResult(topic=snapshot.name, messages=[], progress=progress)

        consumer = self._client.new_consumer(group_id)
        try:
            self._assign(consumer, plan)
            messages = self._drain(consumer, plan, progress, timeout, cancel)
        finally:
            self._release(consumer)
        return ConsumptionResult(topic=snapshot.name, messages=messages, progress=progress)

    def _assign(self, consumer: KafkaConsumer, plan: ConsumptionPlan) -> None:
        tps = {w.partition: TopicPartition(plan.topic, w.partition) for w in plan.active}
        try:
            consumer.assign(list(tps.values()))
            for w in plan.active:
                consumer.seek(tps[w.partition], w.floor)
        except (KafkaError, AssertionError, ValueError) as exc:
            raise AssignmentFailed(
                f"Cannot assign {plan.topic} partitions {sorted(tps)}: {exc}",
                topic=plan.topic,
            ) from exc

    def _drain(
        self,
        consumer: KafkaConsumer,
        plan: ConsumptionPlan,
        progress: Dict[int, int],
        timeout: float,
        cancel: Optional[threading.Event],
    ) -> List[MessageRecord]:
        floors = {w.partition: w.floor for w in plan.active}
        limits = plan.limits
        pending = set(limits)
        messages: List[MessageRecord] = []
        deadline = self._clock() + timeout

        while pending:
            if cancel is not None and cancel.is_set():
                logger.info("%s: read cancelled with partitions %s pending", plan.topic, sorted(pending))
                break
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info("%s: read deadline reached with partitions %s pending", plan.topic, sorted(pending))
                break

            poll_ms = max(1, int(min(self._settings.poll_timeout_ms, remaining * 1000)))
            try:
                batch = consumer.poll(timeout_ms=poll_ms)
            except OffsetOutOfRangeError as exc:
                raise AssignmentFailed(f"{plan.topic}: offset out of range: {exc}", topic=plan.topic) from exc
            except KafkaError as exc:
                raise FetchFailed(f"{plan.topic}: fetch failed: {exc}", topic=plan.topic) from exc
            if not batch:
                logger.debug("%s: no more data, partitions %s exhausted early", plan.topic, sorted(pending))
                break

            for tp, records in batch.items():
                for record in records:
                    pid = record.partition
                    if pid not in pending:
                        continue
                    if floors[pid] <= record.offset <= limits[pid]:
                        messages.append(self._to_message(record))
                        progress[pid] = record.offset
                        self._commit(consumer)
                    if record.offset >= limits[pid]:
                        # the limit offset itself may never arrive (compaction, control records)
                        progress[pid] = limits[pid]
                        pending.discard(pid)
                        consumer.pause(tp)
        return messages

    def _to_message(self, record) -> MessageRecord:
        try:
            payload = decode_payload(record.value)
        except DeliveryError as exc:
            logger.warning("%s[%d]@%d: %s", record.topic, record.partition, record.offset, exc)
            payload = DELIVERY_ERROR_MARKER
        timestamp = record.timestamp if record.timestamp is not None else -1
        return MessageRecord(
            payload=payload,
            partition=record.partition,
            offset=record.offset,
            timestamp=timestamp,
        )

    def _commit(self, consumer: KafkaConsumer) -> None:
        try:
            consumer.commit_async(callback=_log_commit_result)
        except KafkaError as exc:
            logger.warning("async commit could not be sent: %s", exc)

    def _release(self, consumer: KafkaConsumer) -> None:
        try:
            consumer.close(autocommit=False)
        except KafkaError as exc:
            logger.warning("consumer close failed: %s", exc)


def _log_commit_result(offsets, response) -> None:
    if isinstance(response, Exception):
        logger.warning("async commit of %s failed: %s", offsets, response)
