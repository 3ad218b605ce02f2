import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from order_store.cache import RedisOrderCache
from order_store.config import Settings
from order_store.db import make_engine
from order_store.errors import CacheError, OrderNotFound
from order_store.messaging import RabbitConnection
from order_store.pipeline import OrderPipeline
from order_store.schemas import Order
from order_store.storage import OrderStorage
from order_store.workers import OrderConsumer

logger = logging.getLogger("orders.main")


@dataclass
class Services:
    storage: OrderStorage
    cache: RedisOrderCache
    rabbit: Optional[RabbitConnection] = None


async def build_services(settings: Settings) -> Services:
    engine = make_engine(settings.database_url, echo=settings.DB_ECHO)
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    return Services(
        storage=OrderStorage(engine),
        cache=RedisOrderCache(redis),
        rabbit=RabbitConnection(settings),
    )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    services_factory: Callable[[Settings], Awaitable[Services]] = build_services,
) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = await services_factory(settings)
        app.state.cache = services.cache

        consumer = None
        try:
            # без основного хранилища сервис не стартует
            await services.storage.ensure_schema()
            await services.cache.restore_from_storage(services.storage)

            if services.rabbit is not None:
                await services.rabbit.connect()
                consumer = OrderConsumer(
                    await services.rabbit.channel(),
                    settings.ORDERS_QUEUE,
                    OrderPipeline(services.storage, services.cache),
                )
                consumer.start()

            yield
        finally:
            logger.info("[Orders] Shutting down")
            if consumer is not None:
                await consumer.stop()
            if services.rabbit is not None:
                await services.rabbit.close()
            await services.cache.close()
            await services.storage.close()

    app = FastAPI(title="Orders Store", lifespan=lifespan)

    @app.get("/orders/{order_id}", response_model=Order)
    async def get_order(order_id: str, cache: RedisOrderCache = Depends(get_cache)):
        try:
            return await cache.get_order(order_id)
        except OrderNotFound:
            raise HTTPException(status_code=404, detail="Order not found")
        except CacheError as e:
            logger.warning("[Orders] Cache lookup of %s failed: %s", order_id, e)
            raise HTTPException(status_code=500, detail="Cache internal error")

    @app.get("/customers/{customer_id}/orders")
    async def list_customer_orders(customer_id: str, cache: RedisOrderCache = Depends(get_cache)):
        try:
            order_ids = await cache.get_customer_order_ids(customer_id)
        except CacheError as e:
            logger.warning("[Orders] Cache lookup of customer %s failed: %s", customer_id, e)
            raise HTTPException(status_code=500, detail="Cache internal error")
        return {"customer_id": customer_id, "order_ids": order_ids}

    @app.get("/health")
    async def health(cache: RedisOrderCache = Depends(get_cache)):
        if not await cache.ping():
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ok"}

    return app


def get_cache(request: Request) -> RedisOrderCache:
    return request.app.state.cache


def run() -> None:
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.HTTP_HOST, port=settings.HTTP_PORT)


if __name__ == "__main__":
    run()
