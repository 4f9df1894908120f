"""Drive the async core from synchronous (WSGI) code."""

from __future__ import annotations

import asyncio
import contextvars
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional, TypeVar

T = TypeVar("T")


class _BackgroundLoop:
    """One daemon event loop shared by every sync caller in the process.

    The httpx clients held by a :class:`~atxp_server.config.ServerConfig` are
    bound to the loop they first run on, so every WSGI worker thread submits
    to this same loop. Coroutines run in a copy of the submitting thread's
    context, so the ATXP request context bound on a Flask worker is visible
    to them.
    """

    def __init__(self, name: str = "atxp-async") -> None:
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is not None and self._loop.is_running():
                return self._loop

            loop = asyncio.new_event_loop()
            started = threading.Event()

            def _serve() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(started.set)
                loop.run_forever()

            threading.Thread(target=_serve, name=self._name, daemon=True).start()
            started.wait()
            self._loop = loop
            return loop

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        loop = self._get_loop()
        if threading.current_thread().name == self._name:
            coro.close()
            raise RuntimeError("run_async called from the ATXP event loop thread")

        outcome: Future = Future()
        context = contextvars.copy_context()

        def _settle(task: asyncio.Task) -> None:
            if task.cancelled():
                outcome.cancel()
            elif task.exception() is not None:
                outcome.set_exception(task.exception())
            else:
                outcome.set_result(task.result())

        def _start() -> None:
            task = context.run(loop.create_task, coro)
            task.add_done_callback(_settle)

        loop.call_soon_threadsafe(_start)
        return outcome.result()


_LOOP = _BackgroundLoop()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` on the shared loop and block until it finishes."""
    return _LOOP.run(coro)
