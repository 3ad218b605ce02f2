import asyncio

import pytest

from order_store.workers import OrderConsumer

pytestmark = pytest.mark.anyio


class FakeMessage:
    def __init__(self, body: bytes):
        self.body = body
        self.acked = asyncio.Event()

    async def ack(self):
        self.acked.set()


class FakeQueueIterator:
    def __init__(self, messages: asyncio.Queue):
        self.messages = messages

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.messages.get()


class FakeQueue:
    def __init__(self):
        self.messages = asyncio.Queue()

    def iterator(self):
        return FakeQueueIterator(self.messages)


class FakeChannel:
    def __init__(self):
        self.queue = FakeQueue()
        self.prefetch_count = None

    async def declare_queue(self, name, durable=False):
        return self.queue

    async def set_qos(self, prefetch_count):
        self.prefetch_count = prefetch_count


class RecordingPipeline:
    def __init__(self):
        self.handled = []
        self.active = 0
        self.max_active = 0

    async def handle(self, raw):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        self.handled.append(raw)
        self.active -= 1


class BlockingPipeline:
    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.finished = False

    async def handle(self, raw):
        self.started.set()
        await self.release.wait()
        self.finished = True


async def test_messages_are_processed_one_by_one_in_order():
    channel = FakeChannel()
    pipeline = RecordingPipeline()
    consumer = OrderConsumer(channel, "orders", pipeline)
    messages = [FakeMessage(f"m{n}".encode()) for n in range(3)]
    for message in messages:
        channel.queue.messages.put_nowait(message)

    consumer.start()
    await asyncio.wait_for(asyncio.gather(*(m.acked.wait() for m in messages)), timeout=2)
    await consumer.stop()

    assert pipeline.handled == [b"m0", b"m1", b"m2"]
    assert pipeline.max_active == 1
    assert channel.prefetch_count == 1


async def test_stop_waits_for_in_flight_message():
    channel = FakeChannel()
    pipeline = BlockingPipeline()
    consumer = OrderConsumer(channel, "orders", pipeline)
    message = FakeMessage(b"order")
    channel.queue.messages.put_nowait(message)

    consumer.start()
    await asyncio.wait_for(pipeline.started.wait(), timeout=2)

    stopping = asyncio.create_task(consumer.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done()

    pipeline.release.set()
    await asyncio.wait_for(stopping, timeout=2)

    assert pipeline.finished
    assert message.acked.is_set()


async def test_message_is_acked_even_if_pipeline_blows_up():
    class ExplodingPipeline:
        async def handle(self, raw):
            raise RuntimeError("boom")

    channel = FakeChannel()
    consumer = OrderConsumer(channel, "orders", ExplodingPipeline())
    first, second = FakeMessage(b"1"), FakeMessage(b"2")
    channel.queue.messages.put_nowait(first)
    channel.queue.messages.put_nowait(second)

    consumer.start()
    await asyncio.wait_for(asyncio.gather(first.acked.wait(), second.acked.wait()), timeout=2)
    await consumer.stop()


async def test_crashed_consumer_is_logged_and_stop_returns(caplog):
    class ClosedChannel(FakeChannel):
        async def declare_queue(self, name, durable=False):
            raise RuntimeError("channel closed")

    consumer = OrderConsumer(ClosedChannel(), "orders", RecordingPipeline())

    task = consumer.start()
    await asyncio.sleep(0.05)

    assert task.done()
    assert "Order consumer crashed" in caplog.text

    await asyncio.wait_for(consumer.stop(), timeout=2)
