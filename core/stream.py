import asyncio
import logging
from typing import Optional

from .messages import InboundMessage

log = logging.getLogger(__name__)

_CLOSED = object()


class MessageStream:
    """Ordered, unbounded feed of inbound messages from every conversation."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False

    def publish(self, message: InboundMessage) -> None:
        if self._closed:
            return
        self._queue.put_nowait(message)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "MessageStream":
        return self

    async def __anext__(self) -> InboundMessage:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class MessageListener:
    def __init__(self, stream: MessageStream, dispatcher) -> None:
        self.stream = stream
        self.dispatcher = dispatcher

    async def _next(self, stop_event: asyncio.Event) -> Optional[InboundMessage]:
        getter = asyncio.ensure_future(self.stream.__anext__())
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopper.cancel()
        if getter not in done:
            getter.cancel()
            return None
        try:
            return getter.result()
        except StopAsyncIteration:
            return None

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Handle messages one at a time until the stream ends or ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        log.info("Starting message listener...")
        while not stop_event.is_set():
            message = await self._next(stop_event)
            if message is None:
                break
            await self.dispatcher.handle(message)
        log.info("Message listener stopped")
