"""Global reusable FastAPI dependencies (service, worker pool, settings)."""
from fastapi import Request

from topic_browser.core.config import Settings
from topic_browser.domain.services.topic_service import TopicService
from topic_browser.services.worker_pool import WorkerPool


def get_topic_service(request: Request) -> TopicService:
    """Return the TopicService created in the app lifespan."""
    return request.app.state.topic_service


def get_worker_pool(request: Request) -> WorkerPool:
    return request.app.state.worker_pool


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
