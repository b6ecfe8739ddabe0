"""Error taxonomy shared by the core and the transport layers.

Every fatal failure of an operation is a :class:`TopicBrowserError` subclass
carrying the HTTP status and problem ``type`` slug the HTTP layer renders, plus
a small ``context`` dict (topic, partition, ...) that ends up in the problem
document. Errors that are absorbed inside an operation (``BrokerQueryFailed``
in the resolver, ``DeliveryError`` per record) use the same base so they can be
logged uniformly.
"""
from __future__ import annotations

from typing import Any, Dict


class TopicBrowserError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    title: str = "Internal Server Error"
    slug: str = "internal-error"

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    @property
    def type_uri(self) -> str:
        return f"/errors/{self.slug}"


class MetadataUnavailable(TopicBrowserError):
    """Cluster metadata could not be fetched within the timeout."""

    status_code = 503
    title = "Cluster Metadata Unavailable"
    slug = "metadata-unavailable"


class TopicNotFound(TopicBrowserError):
    status_code = 404
    title = "Topic Not Found"
    slug = "topic-not-found"

    def __init__(self, topic: str) -> None:
        super().__init__(f"Topic '{topic}' does not exist", topic=topic)
        self.topic = topic


class BrokerQueryFailed(TopicBrowserError):
    """A single partition watermark query failed."""

    status_code = 502
    title = "Broker Query Failed"
    slug = "broker-query-failed"

    def __init__(self, topic: str, partition: int, reason: str) -> None:
        super().__init__(
            f"Watermark query for {topic}[{partition}] failed: {reason}",
            topic=topic,
            partition=partition,
        )
        self.topic = topic
        self.partition = partition
        self.reason = reason


class ConsumerCreationFailed(TopicBrowserError):
    status_code = 503
    title = "Consumer Creation Failed"
    slug = "consumer-creation-failed"


class AssignmentFailed(TopicBrowserError):
    """A partition/offset pair cannot be assigned or read."""

    status_code = 400
    title = "Assignment Failed"
    slug = "assignment-failed"


class FetchFailed(TopicBrowserError):
    status_code = 502
    title = "Fetch Failed"
    slug = "fetch-failed"


class DeliveryError(TopicBrowserError):
    """A record payload could not be decoded. Never fatal to a batch."""

    status_code = 502
    title = "Delivery Error"
    slug = "delivery-error"


class DeletionFailed(TopicBrowserError):
    status_code = 502
    title = "Topic Deletion Failed"
    slug = "deletion-failed"


class DeletionNotConfirmed(TopicBrowserError):
    """The topic was still listed when the confirmation ceiling passed."""

    status_code = 504
    title = "Topic Deletion Not Confirmed"
    slug = "deletion-not-confirmed"


class RecreationFailed(TopicBrowserError):
    """The topic was deleted but could not be created again.

    ``topic_missing`` is always true here: the cluster no longer holds the
    topic and an operator has to act.
    """

    status_code = 500
    title = "Topic Recreation Failed"
    slug = "recreation-failed"

    def __init__(self, topic: str, reason: str) -> None:
        super().__init__(
            f"Topic '{topic}' was deleted but could not be recreated: {reason}",
            topic=topic,
            topicMissing=True,
        )
        self.topic = topic
        self.topic_missing = True


class ProduceFailed(TopicBrowserError):
    status_code = 502
    title = "Produce Failed"
    slug = "produce-failed"


class OperationTimedOut(TopicBrowserError):
    status_code = 504
    title = "Operation Timed Out"
    slug = "operation-timed-out"


class OperationCancelled(TopicBrowserError):
    status_code = 499
    title = "Operation Cancelled"
    slug = "operation-cancelled"
