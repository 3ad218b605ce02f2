import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from order_store.errors import CacheError, OrderLookupError, OrderNotFound
from order_store.schemas import Delivery, Item, Order, Payment

logger = logging.getLogger("orders.cache")

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def order_key(order_id: str) -> str:
    return f"order:{order_id}"

def delivery_key(order_id: str) -> str:
    return f"order:{order_id}:delivery"

def payment_key(order_id: str) -> str:
    return f"order:{order_id}:payment"

def items_key(order_id: str) -> str:
    return f"order:{order_id}:items"

def customer_orders_key(customer_id: str) -> str:
    return f"customer:{customer_id}:orders"


# Кодирование в формат кэша: все значения хешей строковые.

def encode_order_fields(order: Order) -> Dict[str, str]:
    return {
        "order_id": order.order_id,
        "track_number": order.track_number,
        "entry": order.entry,
        "locale": order.locale,
        "internal_signature": order.internal_signature or "",
        "customer_id": order.customer_id,
        "delivery_service": order.delivery_service,
        "shard_key": str(order.shard_key),
        "sm_id": str(order.sm_id),
        "date_created": order.date_created.isoformat(),
        "oof_shard": order.oof_shard,
    }

def encode_delivery_fields(delivery: Delivery) -> Dict[str, str]:
    return delivery.model_dump()

def encode_payment_fields(payment: Payment) -> Dict[str, str]:
    fields = payment.model_dump()
    fields["request_id"] = payment.request_id or ""
    return {name: str(value) for name, value in fields.items()}

def encode_item(item: Item) -> str:
    return item.model_dump_json()


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0

def _to_datetime(value) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return EPOCH

def decode_cached_order(
    order_fields: Dict[str, str],
    delivery_fields: Dict[str, str],
    payment_fields: Dict[str, str],
    item_blobs: List[str],
) -> Order:
    """
    Собирает Order из четырёх подключей кэша.

    Числа, которые не удалось распарсить, заменяются нулём, дата - эпохой.
    Битый JSON товара или невалидный итоговый заказ - OrderLookupError.
    """
    items = []
    for blob in item_blobs:
        try:
            items.append(Item.model_validate_json(blob))
        except ValidationError as e:
            raise OrderLookupError(f"malformed item blob: {e}") from e

    try:
        return Order(
            order_id=order_fields.get("order_id", ""),
            track_number=order_fields.get("track_number", ""),
            entry=order_fields.get("entry", ""),
            locale=order_fields.get("locale", ""),
            internal_signature=order_fields.get("internal_signature"),
            customer_id=order_fields.get("customer_id", ""),
            delivery_service=order_fields.get("delivery_service", ""),
            shard_key=_to_int(order_fields.get("shard_key")),
            sm_id=_to_int(order_fields.get("sm_id")),
            date_created=_to_datetime(order_fields.get("date_created")),
            oof_shard=order_fields.get("oof_shard", ""),
            delivery=Delivery(
                name=delivery_fields.get("name", ""),
                phone=delivery_fields.get("phone", ""),
                zip=delivery_fields.get("zip", ""),
                city=delivery_fields.get("city", ""),
                address=delivery_fields.get("address", ""),
                region=delivery_fields.get("region", ""),
                email=delivery_fields.get("email", ""),
            ),
            payment=Payment(
                transaction_id=payment_fields.get("transaction_id", ""),
                request_id=payment_fields.get("request_id"),
                currency=payment_fields.get("currency", ""),
                provider=payment_fields.get("provider", ""),
                amount=_to_int(payment_fields.get("amount")),
                payment_dt=_to_int(payment_fields.get("payment_dt")),
                bank=payment_fields.get("bank", ""),
                delivery_cost=_to_int(payment_fields.get("delivery_cost")),
                goods_total=_to_int(payment_fields.get("goods_total")),
                custom_fee=_to_int(payment_fields.get("custom_fee")),
            ),
            items=items,
        )
    except ValidationError as e:
        raise OrderLookupError(f"malformed order fields: {e}") from e


@dataclass
class RestoreReport:
    restored: int = 0
    failed: List[str] = field(default_factory=list)


class RedisOrderCache:
    """Денормализованный кэш заказов в Redis."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def save_order(self, order: Order) -> None:
        """
        Перезаписывает заказ в кэше.

        Каждый подключ пишется своей транзакцией MULTI/EXEC (DEL + запись),
        подключи идут по очереди; сбой посередине оставляет уже записанные.
        """
        oid = order.order_id
        try:
            await self._replace_hash(order_key(oid), encode_order_fields(order))
            await self._replace_hash(delivery_key(oid), encode_delivery_fields(order.delivery))
            await self._replace_hash(payment_key(oid), encode_payment_fields(order.payment))
            await self._replace_list(items_key(oid), [encode_item(i) for i in order.items])
            await self.redis.sadd(customer_orders_key(order.customer_id), oid)
        except RedisError as e:
            raise CacheError(f"order {oid}: {e}") from e

    async def _replace_hash(self, key: str, mapping: Dict[str, str]) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping=mapping)
            await pipe.execute()

    async def _replace_list(self, key: str, values: List[str]) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            if values:
                pipe.rpush(key, *values)
            await pipe.execute()

    async def get_order(self, order_id: str) -> Order:
        try:
            order_fields = await self.redis.hgetall(order_key(order_id))
            if not order_fields or not order_fields.get("order_id"):
                raise OrderNotFound(order_id)
            delivery_fields = await self.redis.hgetall(delivery_key(order_id))
            payment_fields = await self.redis.hgetall(payment_key(order_id))
            item_blobs = await self.redis.lrange(items_key(order_id), 0, -1)
        except RedisError as e:
            raise CacheError(f"order {order_id}: {e}") from e

        return decode_cached_order(order_fields, delivery_fields, payment_fields, item_blobs)

    async def get_customer_order_ids(self, customer_id: str) -> List[str]:
        try:
            members = await self.redis.smembers(customer_orders_key(customer_id))
        except RedisError as e:
            raise CacheError(f"customer {customer_id}: {e}") from e
        return sorted(members)

    async def restore_from_storage(self, storage) -> RestoreReport:
        """
        Прогрев кэша из основного хранилища при старте.

        Ошибка чтения хранилища пробрасывается (без неё сервис не стартует),
        ошибки отдельных заказов только логируются.
        """
        orders = await storage.get_all_orders()
        report = RestoreReport()
        for order in orders:
            try:
                await self.save_order(order)
            except CacheError as e:
                logger.warning("[Orders] Failed to restore order %s into cache: %s", order.order_id, e)
                report.failed.append(order.order_id)
                continue
            report.restored += 1
            logger.debug("[Orders] Order %s restored into cache", order.order_id)

        logger.info(
            "[Orders] Cache restored from database: %d orders, %d failed",
            report.restored, len(report.failed),
        )
        return report

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("[Orders] Redis connection closed")
