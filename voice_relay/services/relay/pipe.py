# voice_relay/services/relay/pipe.py
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

_EOF = object()


class PipeClosed(RuntimeError):
    pass


class BoundedPipe:
    """
    Single-producer / single-consumer byte pipe with a fixed chunk capacity.

    The producer (inbound body reader) awaits in `send()` once `max_chunks`
    chunks are waiting, so a slow consumer (outbound socket) stops the
    producer from pulling more bytes off the client connection.

      pipe = BoundedPipe(8)
      await pipe.send(b"...")    # producer
      await pipe.close()         # producer, end of stream
      pipe.abort(exc)            # producer, failure: reader raises exc
      async for chunk in pipe:   # consumer
          ...
    """

    def __init__(self, max_chunks: int = 8) -> None:
        if max_chunks < 1:
            raise ValueError("max_chunks must be >= 1")
        self.max_chunks = max_chunks
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_chunks)
        self._error: Optional[BaseException] = None
        self._closed = False      # producer side finished (close or abort)
        self._drained = False     # consumer saw EOF
        self.high_water = 0
        self.bytes_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: bytes) -> None:
        if self._closed:
            raise PipeClosed("send() after close")
        if not chunk:
            return
        await self._queue.put(chunk)
        self.bytes_sent += len(chunk)
        self.high_water = max(self.high_water, self._queue.qsize())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_EOF)

    def abort(self, exc: BaseException) -> None:
        if self._closed and self._error is not None:
            return
        self._error = exc
        self._closed = True
        # buffered data is worthless now; make room for the sentinel
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_EOF)

    async def receive(self) -> Optional[bytes]:
        """Next chunk, or None at end of stream. Raises the abort error."""
        if self._drained:
            if self._error is not None:
                raise self._error
            return None
        item = await self._queue.get()
        if item is _EOF:
            self._drained = True
            if self._error is not None:
                raise self._error
            return None
        return item

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.receive()
            if chunk is None:
                return
            yield chunk
