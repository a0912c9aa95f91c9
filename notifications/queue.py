"""Rate-limited, single-consumer queue in front of the SMS gateway.

The provider enforces its own throughput ceiling, so sends are serialized
with a fixed pause after each one. One worker task owns the queue; while it
exists the queue is being drained.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional, Tuple

LOGGER = logging.getLogger(__name__)

SendFn = Callable[[str, str], Awaitable[None]]
Entry = Tuple[str, str, "asyncio.Future[None]"]


class SmsQueue:
    def __init__(self, send: SendFn, delay: float = 5.0) -> None:
        self._send = send
        self.delay = delay
        self._pending: Optional["asyncio.Queue[Entry]"] = None
        self._worker: Optional["asyncio.Task[None]"] = None

    @property
    def draining(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, address: str, text: str) -> "asyncio.Future[None]":
        """Queue one send; the future settles after the send and its pause."""
        loop = asyncio.get_running_loop()
        if self._pending is None:
            self._pending = asyncio.Queue()
        future: "asyncio.Future[None]" = loop.create_future()
        self._pending.put_nowait((address, text, future))
        if not self.draining:
            self._worker = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        assert self._pending is not None
        while True:
            address, text, future = await self._pending.get()
            try:
                error: Optional[BaseException] = None
                try:
                    await self._send(address, text)
                except Exception as exc:
                    error = exc
                await asyncio.sleep(self.delay)
                if future.done():
                    continue
                if error is None:
                    future.set_result(None)
                else:
                    future.set_exception(error)
            finally:
                self._pending.task_done()

    async def aclose(self) -> None:
        """Wait for queued sends to finish, then stop the worker."""
        if self._pending is not None:
            await self._pending.join()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
