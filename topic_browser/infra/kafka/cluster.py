"""Cluster access façade built on kafka-python."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from kafka import KafkaAdminClient, KafkaConsumer, KafkaProducer, TopicPartition
from kafka.admin import NewTopic
from kafka.errors import KafkaError, KafkaTimeoutError, NoBrokersAvailable, NodeNotReadyError, for_code

from topic_browser.core.config import Settings
from topic_browser.core.exceptions import (
    BrokerQueryFailed,
    ConsumerCreationFailed,
    MetadataUnavailable,
    ProduceFailed,
)
from topic_browser.domain.models.topic import TopicDefinition

logger = logging.getLogger(__name__)

_RETRYABLE = (KafkaTimeoutError, NoBrokersAvailable, NodeNotReadyError)

T = TypeVar("T")


class KafkaClusterClient:
    """
    Lazy adapter around kafka-python Admin, Consumer and Producer APIs.

    Metadata and watermark reads share one admin client and one group-less
    consumer, each behind a lock, and run on a small thread pool so every read
    is bounded by the caller's timeout. Topic deletion and creation open a
    dedicated admin connection per call. Nothing touches the network at
    construction time.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._admin: KafkaAdminClient | None = None
        self._offsets: KafkaConsumer | None = None
        self._admin_lock = threading.Lock()
        self._offsets_lock = threading.Lock()
        self._reads = ThreadPoolExecutor(
            max_workers=settings.read_pool_workers,
            thread_name_prefix="kafka-read",
        )

    # ---------- bootstrap common kwargs ----------
    def _common_kwargs(self) -> dict:
        s = self._settings
        kw = dict(
            bootstrap_servers=s.bootstrap_servers,
            client_id=s.client_id,
            request_timeout_ms=s.request_timeout_ms,
            metadata_max_age_ms=s.metadata_max_age_ms,
            api_version_auto_timeout_ms=s.api_version_auto_timeout_ms,
            security_protocol=s.security_protocol,
        )
        if s.kafka_api_version:
            kw["api_version"] = tuple(int(p) for p in s.kafka_api_version.split("."))
        if s.security_protocol.startswith("SASL"):
            kw.update(
                sasl_mechanism=s.sasl_mechanism,
                sasl_plain_username=s.sasl_plain_username,
                sasl_plain_password=s.sasl_plain_password,
            )
        if s.security_protocol.endswith("SSL"):
            kw.update(ssl_cafile=s.ssl_cafile)
        return kw

    def _ensure_admin(self) -> KafkaAdminClient:
        # caller holds _admin_lock
        if self._admin is not None:
            return self._admin

        last_exc: Exception | None = None
        for attempt in range(1, self._settings.admin_connect_max_tries + 1):
            try:
                self._admin = KafkaAdminClient(**self._common_kwargs())
                return self._admin
            except _RETRYABLE as exc:
                last_exc = exc
                logger.debug("admin connect attempt %d failed: %s", attempt, exc)
                if attempt < self._settings.admin_connect_max_tries:
                    time.sleep(self._settings.admin_connect_backoff_sec * attempt)
        # give up
        raise last_exc or NoBrokersAvailable()

    def _ensure_offsets_consumer(self) -> KafkaConsumer:
        # caller holds _offsets_lock
        if self._offsets is None:
            self._offsets = KafkaConsumer(**self._common_kwargs(), enable_auto_commit=False)
        return self._offsets

    def _bounded(self, fn: Callable[[], T], timeout: float, what: str) -> T:
        future = self._reads.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise KafkaTimeoutError(f"{what} did not complete within {timeout:.1f}s")

    # ---------- Metadata ----------
    def list_topics(self, timeout: float) -> List[str]:
        """Return the names of all topics, sorted.

        Uses a metadata request for *all* topics, so it is safe to call for a
        topic that was just deleted.
        """
        def _list() -> List[str]:
            with self._admin_lock:
                return list(self._ensure_admin().list_topics())

        try:
            names = self._bounded(_list, timeout, "list_topics")
        except KafkaError as exc:
            raise MetadataUnavailable(f"Cannot list topics: {exc}") from exc
        if not self._settings.include_internal_topics:
            names = [n for n in names if not n.startswith("__")]
        return sorted(names)

    def describe_topics(self, names: Optional[Iterable[str]], timeout: float) -> Dict[str, List[int]]:
        """Return partition ids per topic for *names* (all topics when None).

        Names missing from the full listing are dropped before anything is
        described: asking a broker about an unknown topic by name can
        auto-create it.
        """
        listed = self.list_topics(timeout)
        if names is None:
            wanted = listed
        else:
            known = set(listed)
            wanted = [n for n in names if n in known]
        if not wanted:
            return {}

        def _describe() -> list:
            with self._admin_lock:
                return self._ensure_admin().describe_topics(wanted)

        try:
            described = self._bounded(_describe, timeout, "describe_topics")
        except KafkaError as exc:
            raise MetadataUnavailable(f"Cannot describe topics: {exc}") from exc

        out: Dict[str, List[int]] = {}
        for t in described:
            if t.get("error_code"):
                logger.warning("describe %s returned error code %s", t.get("topic"), t["error_code"])
                continue
            out[t["topic"]] = sorted(p["partition"] for p in t.get("partitions", []))
        return out

    def watermarks(self, topic: str, partition: int, timeout: float) -> Tuple[int, int]:
        """Return ``(low, high)`` for one partition."""
        tp = TopicPartition(topic, partition)

        def _query() -> Tuple[int, int]:
            with self._offsets_lock:
                consumer = self._ensure_offsets_consumer()
                low = consumer.beginning_offsets([tp])[tp]
                high = consumer.end_offsets([tp])[tp]
            return low, high

        try:
            return self._bounded(_query, timeout, f"watermarks of {topic}[{partition}]")
        except KafkaError as exc:
            raise BrokerQueryFailed(topic, partition, str(exc)) from exc

    # ---------- Consumers ----------
    def new_consumer(self, group_id: str) -> KafkaConsumer:
        """Return a fresh consumer bound to *group_id*; the caller must close it."""
        try:
            return KafkaConsumer(
                **self._common_kwargs(),
                group_id=group_id,
                enable_auto_commit=False,
                auto_offset_reset="earliest",
                fetch_max_wait_ms=min(500, self._settings.poll_timeout_ms),
            )
        except KafkaError as exc:
            raise ConsumerCreationFailed(
                f"Cannot create consumer for group '{group_id}': {exc}", groupId=group_id
            ) from exc

    # ---------- Admin mutations (dedicated connection per call) ----------
    @contextmanager
    def admin_session(self) -> Iterator[KafkaAdminClient]:
        admin = KafkaAdminClient(**self._common_kwargs())
        try:
            yield admin
        finally:
            admin.close()

    def delete_topic(self, name: str, timeout: float) -> None:
        """Issue a delete; raises the broker's KafkaError on rejection."""
        with self.admin_session() as admin:
            response = admin.delete_topics([name], timeout_ms=int(timeout * 1000))
        _raise_for_topic_errors(response)

    def create_topic(self, definition: TopicDefinition, timeout: float) -> None:
        """Issue a create; raises the broker's KafkaError on rejection."""
        new_topic = NewTopic(
            name=definition.name,
            num_partitions=definition.partition_count,
            replication_factor=definition.replication_factor,
        )
        with self.admin_session() as admin:
            response = admin.create_topics([new_topic], timeout_ms=int(timeout * 1000))
        _raise_for_topic_errors(response)

    # ---------- Producer ----------
    def produce(self, topic: str, partition: int, payload: bytes, timeout: float) -> Tuple[int, int]:
        """Send one record and wait for the ack; returns ``(partition, offset)``."""
        try:
            producer = KafkaProducer(**self._common_kwargs(), acks="all")
        except KafkaError as exc:
            raise ProduceFailed(f"Cannot create producer: {exc}", topic=topic) from exc
        try:
            metadata = producer.send(topic, value=payload, partition=partition).get(timeout=timeout)
            return metadata.partition, metadata.offset
        except (KafkaError, AssertionError) as exc:
            # kafka-python asserts on a partition the topic does not have
            raise ProduceFailed(
                f"Cannot produce to {topic}[{partition}]: {exc or 'unrecognized partition'}",
                topic=topic,
                partition=partition,
            ) from exc
        finally:
            producer.close(timeout=timeout)

    def close(self) -> None:
        self._reads.shutdown(wait=False)
        with self._admin_lock:
            if self._admin is not None:
                self._admin.close()
                self._admin = None
        with self._offsets_lock:
            if self._offsets is not None:
                self._offsets.close(autocommit=False)
                self._offsets = None


def _raise_for_topic_errors(response) -> None:
    """Raise the first per-topic error carried by a Create/DeleteTopics response."""
    entries = getattr(response, "topic_errors", None) or getattr(response, "topic_error_codes", None) or []
    for entry in entries:
        topic, code = entry[0], entry[1]
        if code:
            message = entry[2] if len(entry) > 2 and entry[2] else topic
            raise for_code(code)(message)
