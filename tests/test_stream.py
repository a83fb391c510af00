import asyncio

import pytest

from core.stream import MessageListener, MessageStream

from conftest import make_message


class RecordingDispatcher:
    def __init__(self, delay: float = 0.0):
        self.handled = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = delay
        self.started = asyncio.Event()

    async def handle(self, message):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        await asyncio.sleep(self.delay)
        self.handled.append(message.content)
        self.in_flight -= 1


@pytest.mark.asyncio
async def test_messages_are_handled_in_delivery_order():
    stream = MessageStream()
    for index in range(5):
        stream.publish(make_message(f"0x{index % 2}", f"msg-{index}"))
    stream.close()
    dispatcher = RecordingDispatcher(delay=0.001)

    await MessageListener(stream, dispatcher).run()

    assert dispatcher.handled == [f"msg-{index}" for index in range(5)]
    assert dispatcher.max_in_flight == 1


@pytest.mark.asyncio
async def test_consumer_passes_self_messages_through():
    stream = MessageStream()
    stream.publish(make_message("0xb07", "echo"))
    stream.close()
    dispatcher = RecordingDispatcher()

    await MessageListener(stream, dispatcher).run()

    assert dispatcher.handled == ["echo"]


@pytest.mark.asyncio
async def test_stop_lets_in_flight_message_finish():
    stream = MessageStream()
    stream.publish(make_message("0xabc", "first"))
    stream.publish(make_message("0xabc", "second"))
    dispatcher = RecordingDispatcher(delay=0.05)
    stop_event = asyncio.Event()

    task = asyncio.create_task(MessageListener(stream, dispatcher).run(stop_event))
    await dispatcher.started.wait()
    stop_event.set()
    await asyncio.wait_for(task, timeout=1)

    assert dispatcher.handled == ["first"]


@pytest.mark.asyncio
async def test_stop_while_idle_returns_promptly():
    stream = MessageStream()
    dispatcher = RecordingDispatcher()
    stop_event = asyncio.Event()

    task = asyncio.create_task(MessageListener(stream, dispatcher).run(stop_event))
    await asyncio.sleep(0.01)
    stop_event.set()
    await asyncio.wait_for(task, timeout=1)

    assert dispatcher.handled == []


@pytest.mark.asyncio
async def test_publish_after_close_is_ignored():
    stream = MessageStream()
    stream.close()
    stream.publish(make_message("0xabc", "late"))

    received = [message async for message in stream]

    assert received == []
