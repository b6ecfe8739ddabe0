"""Use-case coordination for topic browsing and lifecycle commands."""
from __future__ import annotations

import logging
import threading
from typing import List, Mapping, Optional

from topic_browser.core.config import Settings
from topic_browser.domain.models.message import ConsumptionResult, ProduceReceipt
from topic_browser.domain.models.topic import TopicDefinition, TopicSnapshot, TopicSummary
from topic_browser.domain.services.consumption_engine import WindowedConsumptionEngine
from topic_browser.domain.services.topic_lifecycle import TopicLifecycle
from topic_browser.domain.services.watermark_resolver import WatermarkResolver
from topic_browser.infra.kafka.cluster import KafkaClusterClient

logger = logging.getLogger(__name__)


class TopicService:
    """Stateless entry point the HTTP routes and the CLI call into."""

    def __init__(
        self,
        client: KafkaClusterClient,
        settings: Settings,
        resolver: Optional[WatermarkResolver] = None,
        engine: Optional[WindowedConsumptionEngine] = None,
        lifecycle: Optional[TopicLifecycle] = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._resolver = resolver or WatermarkResolver(client, settings)
        self._engine = engine or WindowedConsumptionEngine(client, self._resolver, settings)
        self._lifecycle = lifecycle or TopicLifecycle(client, self._resolver, settings)

    # ------------------------------------------------------------------ #
    # Queries                                                             #
    # ------------------------------------------------------------------ #
    def list_topics(self, name_filter: Optional[str] = None) -> List[TopicSummary]:
        """Return topics with their partition count, optionally filtered by substring."""
        partitions = self._client.describe_topics(None, self._settings.metadata_timeout_sec)
        topics = [TopicSummary(name=n, partition_count=len(p)) for n, p in sorted(partitions.items())]
        if name_filter:
            needle = name_filter.lower()
            topics = [t for t in topics if needle in t.name.lower()]
        return topics

    def resolve_topics(self, name: Optional[str] = None) -> List[TopicSnapshot]:
        return self._resolver.resolve(name)

    def describe_topic(self, name: str) -> TopicSnapshot:
        return self._resolver.snapshot(name)

    def consume(
        self,
        topic: str,
        offsets: Mapping[int, int],
        group_id: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ConsumptionResult:
        return self._engine.consume(
            topic, group_id or self._settings.default_group_id, offsets, timeout=timeout, cancel=cancel
        )

    def tail(
        self,
        topic: str,
        group_id: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ConsumptionResult:
        return self._engine.tail(topic, group_id or self._settings.default_group_id, timeout=timeout, cancel=cancel)

    # ------------------------------------------------------------------ #
    # Commands                                                            #
    # ------------------------------------------------------------------ #
    def produce_message(self, topic: str, partition: int, payload: str) -> ProduceReceipt:
        """Append one UTF-8 message to *topic*/*partition*."""
        if partition < 0:
            raise ValueError("partition must be >= 0")
        stored_partition, offset = self._client.produce(
            topic, partition, payload.encode("utf-8"), timeout=self._settings.produce_timeout_sec
        )
        logger.debug("produced to %s[%d]@%d", topic, stored_partition, offset)
        return ProduceReceipt(topic=topic, partition=stored_partition, offset=offset)

    def delete_topic(self, name: str) -> None:
        self._lifecycle.delete_topic(name)

    def reset_topic(self, name: str, cancel: Optional[threading.Event] = None) -> TopicDefinition:
        return self._lifecycle.reset_topic(name, cancel=cancel)
