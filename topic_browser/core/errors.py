"""RFC 7807 *Problem Details* support for FastAPI."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from topic_browser.core.exceptions import RecreationFailed, TopicBrowserError

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


class ProblemDetail(BaseModel):
    """Data model that serialises to RFC 7807 JSON.

    Attributes
    ----------
    type : str
        A URI reference that identifies the problem type.
    title : str
        A short human-readable summary of the problem type.
    status : int
        The HTTP status code.
    detail : str | None
        A human-readable explanation specific to this occurrence.
    instance : str
        A URI reference that identifies the specific occurrence.

    Extension members (``topic``, ``partition``, ``topicMissing`` ...) are
    carried through unchanged.
    """

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={"required": ["type", "title", "status"]},
    )

    type: str = Field(..., examples=["/errors/topic-not-found"])
    title: str
    status: int = Field(..., ge=400, le=599)
    detail: Optional[str] = None
    instance: str = Field(default_factory=lambda: f"urn:uuid:{uuid4()}")


def _problem(status: int, title: str, detail: str, type_: str = "about:blank", **extra: Any) -> Dict[str, Any]:
    return ProblemDetail(type=type_, title=title, status=status, detail=detail, **extra).model_dump(mode="json")


def problem_for(exc: TopicBrowserError) -> Dict[str, Any]:
    """Render a domain error as a problem document."""
    return _problem(exc.status_code, exc.title, exc.detail, exc.type_uri, **exc.context)


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TopicBrowserError)
    async def domain_error_handler(_: Request, exc: TopicBrowserError):
        if isinstance(exc, RecreationFailed):
            logger.error("topic %s is missing after a failed reset", exc.topic)
        return JSONResponse(
            status_code=exc.status_code,
            content=problem_for(exc),
            media_type=PROBLEM_MEDIA_TYPE,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=_problem(400, "Bad Request", str(exc)),
            media_type=PROBLEM_MEDIA_TYPE,
        )

    # Catch-all
    @app.exception_handler(Exception)
    async def unhandled(_: Request, exc: Exception):
        logger.exception("unhandled error")
        return JSONResponse(
            status_code=500,
            content=_problem(500, "Internal Server Error", str(exc)),
            media_type=PROBLEM_MEDIA_TYPE,
        )
