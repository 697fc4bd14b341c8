"""
Request deadline enforcement.

Written as a plain ASGI middleware rather than BaseHTTPMiddleware: the
guard has to see the individual `http.response.start` message to know
whether the downstream app has already started answering.
"""

from __future__ import annotations

import asyncio
import threading

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from code_converter.errors import RequestTimedOut
from code_converter.logging_config import logger

PENDING = "pending"
COMPLETED = "completed"
TIMED_OUT = "timed_out"


class CompletionGate:
    """
    Single-assignment outcome of one request.

    `claim()` is a compare-and-set from PENDING to the given outcome; only
    the first caller wins, every later caller gets False.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = PENDING

    @property
    def state(self) -> str:
        return self._state

    def claim(self, outcome: str) -> bool:
        if outcome not in (COMPLETED, TIMED_OUT):
            raise ValueError(f"unknown outcome: {outcome!r}")
        with self._lock:
            if self._state != PENDING:
                return False
            self._state = outcome
            return True


class RequestTimeoutMiddleware:
    def __init__(self, app: ASGIApp, timeout_seconds: float = 30.0) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        gate = CompletionGate()

        async def guarded_send(message: Message) -> None:
            if message["type"] == "http.response.start":
                if not gate.claim(COMPLETED):
                    return
            elif gate.state != COMPLETED:
                # Late output from a request that already timed out.
                return
            await send(message)

        work = asyncio.ensure_future(self.app(scope, receive, guarded_send))
        # asyncio.wait owns the deadline timer and cancels it as soon as
        # `work` finishes first.
        try:
            done, _ = await asyncio.wait({work}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            work.cancel()
            raise
        if work in done:
            work.result()
            return

        if not gate.claim(TIMED_OUT):
            # Response already started; let the downstream finish streaming it.
            await work
            return

        logger.warning(
            "request timed out after %.3fs: %s %s",
            self.timeout_seconds,
            scope.get("method"),
            scope.get("path"),
        )
        error = RequestTimedOut()
        response = JSONResponse(status_code=error.status_code, content=error.to_envelope())
        await response(scope, receive, send)

        work.cancel()
        # Unwind the abandoned handler (and its provider call) before returning.
        await asyncio.gather(work, return_exceptions=True)


__all__ = [
    "COMPLETED",
    "PENDING",
    "TIMED_OUT",
    "CompletionGate",
    "RequestTimeoutMiddleware",
]
