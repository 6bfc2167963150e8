"""Progress reporting for uploads and downloads.

Callers either pass a plain callable that receives :class:`TransferProgress`
events, or a :class:`ProgressStream` and consume it as an async iterator
while the transfer runs:

    stream = ProgressStream()
    task = asyncio.create_task(engine.download("report.csv", on_progress=stream))
    async for event in stream:
        print(f"{event.percent:.0f}%")
    payload = await task

The engine closes a stream when its operation finishes, successfully or not,
which ends the ``async for`` loop.
"""

import asyncio
from typing import Callable, Optional, Union

from .models import TransferProgress

ProgressCallback = Callable[[TransferProgress], None]

_CLOSED = object()


class ProgressStream:
    """Async iterator of progress events for a single transfer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __call__(self, event: TransferProgress) -> None:
        self.publish(event)

    def publish(self, event: TransferProgress) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "ProgressStream":
        return self

    async def __anext__(self) -> TransferProgress:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


ProgressHandler = Union[ProgressCallback, ProgressStream]


class ProgressTracker:
    """Accumulates transferred bytes and reports them to a handler."""

    def __init__(self, total: int, handler: Optional[ProgressHandler]):
        self.total = total
        self.loaded = 0
        self._handler = handler

    def update(self, loaded: int) -> None:
        """Report the absolute number of bytes transferred so far."""
        self.loaded = loaded
        if self._handler is None:
            return
        percent = 100.0 if self.total == 0 else loaded / self.total * 100
        self._handler(
            TransferProgress(percent=percent, loaded=loaded, total=self.total)
        )

    def advance(self, amount: int) -> None:
        self.update(self.loaded + amount)
