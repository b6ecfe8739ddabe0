"""Destructive topic operations: delete and reset (delete + recreate)."""
from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from kafka.errors import KafkaError, TopicAlreadyExistsError

from topic_browser.core.backoff import ExponentialBackoff
from topic_browser.core.config import Settings
from topic_browser.core.exceptions import (
    DeletionFailed,
    DeletionNotConfirmed,
    MetadataUnavailable,
    OperationCancelled,
    RecreationFailed,
)
from topic_browser.domain.models.topic import TopicDefinition
from topic_browser.domain.services.watermark_resolver import WatermarkResolver
from topic_browser.infra.kafka.cluster import KafkaClusterClient

logger = logging.getLogger(__name__)


class ResetState(str, Enum):
    CAPTURE = "capture"
    DELETE = "delete"
    VERIFY_ABSENT = "verify_absent"
    SETTLE = "settle"
    RECREATE = "recreate"
    DONE = "done"


class TopicLifecycle:
    """
    Runs ``CAPTURE → DELETE → VERIFY_ABSENT → SETTLE → RECREATE``.

    There is no rollback. A failure after the delete was accepted leaves the
    topic missing and is raised as :class:`RecreationFailed` (or
    :class:`DeletionNotConfirmed` when the delete never showed up in
    metadata). Cancellation is honoured only until the delete is issued.
    """

    def __init__(
        self,
        client: KafkaClusterClient,
        resolver: WatermarkResolver,
        settings: Settings,
        backoff: Optional[ExponentialBackoff] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._settings = settings
        self._backoff = backoff or ExponentialBackoff.for_delete_confirmation(settings)
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Commands                                                            #
    # ------------------------------------------------------------------ #
    def reset_topic(self, name: str, cancel: Optional[threading.Event] = None) -> TopicDefinition:
        """Delete *name* and create it again with the same partition count."""
        self._enter(name, ResetState.CAPTURE)
        definition = self._resolver.snapshot(name).definition()
        self._check_cancel(name, cancel)

        self._enter(name, ResetState.DELETE)
        self._delete(name)

        self._enter(name, ResetState.VERIFY_ABSENT)
        self._verify_absent(name)

        self._enter(name, ResetState.SETTLE)
        # absent from metadata does not mean every replica finished deleting
        self._sleep(self._settings.settle_delay_sec)

        self._enter(name, ResetState.RECREATE)
        self._recreate(definition)

        self._enter(name, ResetState.DONE)
        return definition

    def delete_topic(self, name: str) -> None:
        """Delete *name* without waiting for the delete to propagate."""
        self._resolver.snapshot(name)
        self._delete(name)
        logger.info("topic %s deleted", name)

    # ------------------------------------------------------------------ #
    # States                                                              #
    # ------------------------------------------------------------------ #
    def _enter(self, name: str, state: ResetState) -> None:
        logger.info("reset %s: %s", name, state.value)

    def _check_cancel(self, name: str, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"Reset of '{name}' cancelled before deletion", topic=name)

    def _delete(self, name: str) -> None:
        try:
            self._client.delete_topic(name, timeout=self._settings.admin_operation_timeout_sec)
        except KafkaError as exc:
            raise DeletionFailed(f"Deleting topic '{name}' failed: {exc}", topic=name) from exc

    def _verify_absent(self, name: str) -> int:
        """Poll the full topic list until *name* is gone; returns the attempts used."""
        started = self._clock()
        attempt = 0
        while True:
            try:
                still_listed = name in self._client.list_topics(timeout=self._settings.metadata_timeout_sec)
            except MetadataUnavailable as exc:
                logger.debug("reset %s: topic list unavailable (%s), retrying", name, exc)
                still_listed = True
            if not still_listed:
                logger.debug("reset %s: absence confirmed after %d attempt(s)", name, attempt + 1)
                return attempt + 1

            elapsed = self._clock() - started
            if self._backoff.exhausted(elapsed):
                raise DeletionNotConfirmed(
                    f"Topic '{name}' still listed {elapsed:.1f}s after deletion; not recreating",
                    topic=name,
                )
            self._sleep(self._backoff.next_delay(attempt))
            attempt += 1

    def _recreate(self, definition: TopicDefinition) -> None:
        try:
            self._client.create_topic(definition, timeout=self._settings.admin_operation_timeout_sec)
        except TopicAlreadyExistsError:
            logger.warning(
                "reset %s: topic was recreated by someone else after deletion; "
                "partition count may differ from %d",
                definition.name,
                definition.partition_count,
            )
        except KafkaError as exc:
            logger.error("reset %s: topic deleted but NOT recreated: %s", definition.name, exc)
            raise RecreationFailed(definition.name, str(exc)) from exc
