# topic_browser/api/topics.py
from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Response, status

from topic_browser.api.dependencies import get_app_settings, get_topic_service, get_worker_pool
from topic_browser.core.config import Settings
from topic_browser.domain.models.consumption import parse_offsets
from topic_browser.domain.models.message import ConsumptionResult, ProduceReceipt, ProduceRequest
from topic_browser.domain.models.topic import TOPIC_NAME_PATTERN, TopicSnapshot, TopicSummary
from topic_browser.domain.services.topic_service import TopicService
from topic_browser.services.worker_pool import WorkerPool

router = APIRouter(prefix="/topics", tags=["topics"])

TopicName = Annotated[str, Path(pattern=TOPIC_NAME_PATTERN, description="Kafka topic name")]


@router.get("", response_model=List[TopicSummary])
async def list_topics(
    q: Optional[str] = Query(None, description="Optional filter substring"),
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
):
    """Returns every topic with its partition count."""
    return await pool.run(svc.list_topics, q, timeout=settings.request_deadline_sec)


@router.get("/snapshots", response_model=List[TopicSnapshot])
async def topic_snapshots(
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
):
    """Watermarks and message counts of every topic."""
    return await pool.run(svc.resolve_topics, None, timeout=settings.request_deadline_sec)


@router.get("/{topic}", response_model=TopicSnapshot)
async def topic_detail(
    topic: TopicName,
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
):
    return await pool.run(svc.describe_topic, topic, timeout=settings.request_deadline_sec)


@router.get("/{topic}/messages", response_model=ConsumptionResult)
async def read_messages(
    topic: TopicName,
    offsets: Optional[str] = Query(
        None, description="Start offsets as 'partition;offset' pairs, e.g. '0;45,1;25'. Omit to read the latest window."
    ),
    group: Optional[str] = Query(None, description="Consumer group commits are recorded under."),
    timeout: Optional[float] = Query(None, gt=0, le=120, description="Read ceiling in seconds."),
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
):
    requested = parse_offsets(offsets)
    deadline = max(settings.request_deadline_sec, (timeout or 0) + settings.metadata_timeout_sec)
    if requested is None:
        return await pool.run(svc.tail, topic, group, timeout, timeout=deadline, cancellable=True)
    return await pool.run(svc.consume, topic, requested, group, timeout, timeout=deadline, cancellable=True)


@router.post("/{topic}/messages", response_model=ProduceReceipt)
async def send_message(
    topic: TopicName,
    body: ProduceRequest = Body(...),
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
):
    return await pool.run(
        svc.produce_message, topic, body.partition, body.message, timeout=settings.request_deadline_sec
    )


@router.delete("/{topic}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_topic(
    topic: TopicName,
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    await pool.run(svc.delete_topic, topic, timeout=settings.request_deadline_sec)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{topic}/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_topic(
    topic: TopicName,
    svc: TopicService = Depends(get_topic_service),
    pool: WorkerPool = Depends(get_worker_pool),
) -> Response:
    """Delete and recreate *topic* with the same partition count.

    No deadline and no cancellation here: once the delete is issued the reset
    runs to completion, and the request only learns the outcome by waiting.
    Callers that need to abort before the delete use
    ``TopicService.reset_topic(name, cancel=...)`` directly.
    """
    await pool.run(svc.reset_topic, topic, timeout=None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
