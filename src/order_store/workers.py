import asyncio
import contextlib
import logging

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage

from order_store.pipeline import OrderPipeline

logger = logging.getLogger("orders.workers")


class OrderConsumer:
    """
    Единственный воркер очереди заказов.

    prefetch_count=1 и последовательная обработка: порядок записи в БД
    совпадает с порядком прихода сообщений.
    """

    def __init__(self, channel: AbstractChannel, queue_name: str, pipeline: OrderPipeline):
        self.channel = channel
        self.queue_name = queue_name
        self.pipeline = pipeline
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        self._task.add_done_callback(self._on_done)
        return self._task

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[Orders] Order consumer crashed, ingestion stopped: %r", exc, exc_info=exc)

    async def run(self) -> None:
        queue = await self.channel.declare_queue(self.queue_name, durable=True)
        await self.channel.set_qos(prefetch_count=1)

        logger.info("[Orders] Starting order consumer on queue '%s'", self.queue_name)
        async with queue.iterator() as it:
            async for message in it:
                self._inflight = asyncio.ensure_future(self.process(message))
                # отмена run() не прерывает обработку текущего сообщения
                try:
                    await asyncio.shield(self._inflight)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("[Orders] Unexpected failure while processing message")

    async def process(self, message: AbstractIncomingMessage) -> None:
        try:
            await self.pipeline.handle(message.body)
        finally:
            # брошенные события тоже подтверждаем: повторов внутри сервиса нет
            await message.ack()

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            # падение воркера уже залогировано в _on_done
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._task
        if self._inflight is not None and not self._inflight.done():
            logger.info("[Orders] Waiting for in-flight message before shutdown")
            try:
                await self._inflight
            except Exception:
                logger.exception("[Orders] In-flight message failed during shutdown")
        logger.info("[Orders] Order consumer stopped")
