import asyncio
import logging
from aio_pika import connect_robust, ExchangeType, Message
from aio_pika.abc import AbstractRobustConnection, AbstractRobustChannel
from order_store.config import Settings

logger = logging.getLogger("orders.messaging")


class RabbitConnection:
    def __init__(self, settings: Settings):
        self.url = settings.rabbit_url
        self.exchange_name = settings.ORDERS_EXCHANGE
        self.queue_name = settings.ORDERS_QUEUE
        self.retry_attempts = settings.RABBIT_RETRY_ATTEMPTS
        self.retry_delay = settings.RABBIT_RETRY_DELAY

        self.connection: AbstractRobustConnection | None = None
        self._channel:   AbstractRobustChannel     | None = None

    async def connect(self) -> None:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                logger.info(f"[Orders] Connecting to RabbitMQ (attempt {attempt}/{self.retry_attempts})")
                self.connection = await connect_robust(self.url)
                self._channel   = await self.connection.channel()

                exchange = await self._channel.declare_exchange(
                    self.exchange_name, ExchangeType.DIRECT, durable=True
                )
                queue = await self._channel.declare_queue(
                    self.queue_name, durable=True
                )
                await queue.bind(exchange, self.queue_name)

                logger.info("[Orders] RabbitMQ setup complete")
                return
            except Exception as e:
                logger.error(f"[Orders] RabbitMQ init failed: {e}")
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_delay)
                else:
                    logger.critical("[Orders] Could not connect to RabbitMQ, giving up")
                    raise

    async def channel(self) -> AbstractRobustChannel:
        if self._channel is None:
            await self.connect()
        return self._channel

    async def publish(self, body: bytes) -> None:
        channel = await self.channel()
        exchange = await channel.declare_exchange(
            self.exchange_name, ExchangeType.DIRECT, durable=True
        )
        await exchange.publish(
            Message(body=body, content_type="application/json"),
            routing_key=self.queue_name
        )

    async def close(self) -> None:
        if self.connection:
            await self.connection.close()
            self.connection = None
            self._channel = None
            logger.info("[Orders] RabbitMQ connection closed")
