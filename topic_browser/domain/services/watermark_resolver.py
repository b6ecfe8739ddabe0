"""Per-partition watermarks for one or all topics."""
from __future__ import annotations

import logging
from typing import List, Optional

from topic_browser.core.config import Settings
from topic_browser.core.exceptions import BrokerQueryFailed, TopicNotFound
from topic_browser.domain.models.topic import PartitionWatermark, TopicSnapshot
from topic_browser.infra.kafka.cluster import KafkaClusterClient

logger = logging.getLogger(__name__)


class WatermarkResolver:
    """Reads watermarks fresh from the cluster on every call; nothing is cached.

    A failed watermark query degrades only its own partition, which is
    reported as ``low = high = -1``; metadata failures abort the call.
    """

    def __init__(self, client: KafkaClusterClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    def resolve(self, name: Optional[str] = None, timeout: Optional[float] = None) -> List[TopicSnapshot]:
        """Return snapshots for *name* (at most one) or for every visible topic.

        Raises
        ------
        MetadataUnavailable
            If the topic list cannot be fetched within *timeout*.
        """
        timeout = self._settings.metadata_timeout_sec if timeout is None else timeout
        partitions_by_topic = self._client.describe_topics(None if name is None else [name], timeout)
        return [
            self._snapshot(topic, partition_ids, timeout)
            for topic, partition_ids in sorted(partitions_by_topic.items())
        ]

    def snapshot(self, name: str, timeout: Optional[float] = None) -> TopicSnapshot:
        """Return the snapshot of *name* or raise :class:`TopicNotFound`."""
        found = self.resolve(name, timeout)
        if not found:
            raise TopicNotFound(name)
        return found[0]

    def _snapshot(self, topic: str, partition_ids: List[int], timeout: float) -> TopicSnapshot:
        marks: List[PartitionWatermark] = []
        for pid in partition_ids:
            try:
                low, high = self._client.watermarks(topic, pid, timeout)
            except BrokerQueryFailed as exc:
                logger.warning("%s; reporting partition as unavailable", exc)
                marks.append(PartitionWatermark.unavailable(pid, exc.reason))
                continue
            if low > high:
                # offsets moved between the two queries
                logger.warning("%s[%d]: low %d above high %d", topic, pid, low, high)
                marks.append(PartitionWatermark.unavailable(pid, f"inconsistent watermarks {low}/{high}"))
                continue
            marks.append(PartitionWatermark(partition=pid, low=low, high=high))
        return TopicSnapshot(name=topic, partitions=marks)
