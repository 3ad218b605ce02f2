import enum
import logging

from order_store.cache import RedisOrderCache
from order_store.errors import CacheError, DecodeError, PersistError
from order_store.schemas import decode_order
from order_store.storage import OrderStorage

logger = logging.getLogger("orders.pipeline")


class Outcome(str, enum.Enum):
    CACHED = "cached"
    DECODE_FAILED = "decode_failed"
    PERSIST_FAILED = "persist_failed"
    CACHE_FAILED = "cache_failed"


class OrderPipeline:
    """
    Обработка одного входящего события: decode -> БД -> кэш.

    Ни один шаг не повторяется: повторная доставка - забота брокера.
    """

    def __init__(self, storage: OrderStorage, cache: RedisOrderCache):
        self.storage = storage
        self.cache = cache

    async def handle(self, raw: bytes) -> Outcome:
        try:
            order = decode_order(raw)
        except DecodeError as e:
            logger.warning("[Orders] Dropping undecodable message: %s", e)
            return Outcome.DECODE_FAILED

        logger.debug("[Orders] Got order %s", order.order_id)

        try:
            await self.storage.insert_order(order)
        except PersistError as e:
            logger.warning("[Orders] Error saving order %s in DB, dropped: %s", order.order_id, e)
            return Outcome.PERSIST_FAILED

        logger.debug("[Orders] Order %s is saved in DB", order.order_id)

        try:
            await self.cache.save_order(order)
        except CacheError as e:
            # заказ уже в БД; в кэше появится после следующего прогрева
            logger.warning("[Orders] Order %s is saved in DB but not in cache: %s", order.order_id, e)
            return Outcome.CACHE_FAILED

        logger.info("[Orders] Order %s is saved and cached", order.order_id)
        return Outcome.CACHED
