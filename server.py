# server.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from topic_browser.api import api_router
from topic_browser.core.config import Settings, get_settings
from topic_browser.core.errors import install_exception_handlers
from topic_browser.core.logging import configure_logging
from topic_browser.domain.services.topic_service import TopicService
from topic_browser.infra.kafka.cluster import KafkaClusterClient
from topic_browser.services.worker_pool import WorkerPool


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    # Lifespan owns the cluster client and the worker pool
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        client = KafkaClusterClient(settings)
        app.state.settings = settings
        app.state.topic_service = TopicService(client, settings)
        app.state.worker_pool = WorkerPool(max_workers=settings.worker_pool_size)
        try:
            yield
        finally:
            app.state.worker_pool.shutdown()
            client.close()

    app = FastAPI(
        title="Kafka Topic Browser API",
        version="1.0.0",
        lifespan=lifespan,
        openapi_url="/api/v1/openapi.json",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
    )

    # CORS: local UI dev servers unless CORS_ALLOW_ORIGINS is set
    allow_origins = settings.cors_allow_origins or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=True)
