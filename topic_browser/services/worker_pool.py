"""Offloads blocking cluster calls from the event loop."""
from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from topic_browser.core.exceptions import OperationTimedOut

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerPool:
    """
    Bounded thread pool for blocking operations with per-call deadlines.

    With ``cancellable=True`` the callable receives a ``cancel`` keyword
    (a :class:`threading.Event`) that is set when the deadline passes, so a
    running read can stop polling and release its consumer.
    """

    def __init__(self, max_workers: int = 8) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="topic-browser")

    async def run(
        self,
        fn: Callable[..., T],
        *args: Any,
        timeout: Optional[float] = None,
        cancellable: bool = False,
        **kwargs: Any,
    ) -> T:
        cancel = threading.Event()
        if cancellable:
            kwargs["cancel"] = cancel
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            cancel.set()
            name = getattr(fn, "__name__", repr(fn))
            logger.warning("%s exceeded its %.1fs deadline", name, timeout)
            raise OperationTimedOut(f"{name} did not finish within {timeout:.1f}s") from exc

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
