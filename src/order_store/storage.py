import logging
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from order_store.db import Base, ensure_database, make_sessionmaker
from order_store.errors import PersistError, StorageError
from order_store.models import DeliveryRecord, ItemRecord, OrderRecord, PaymentRecord
from order_store.schemas import Delivery, Item, Order, Payment

logger = logging.getLogger("orders.storage")


class OrderStorage:
    """
    Основное хранилище заказов (system of record) поверх четырёх таблиц:
    orders, delivery, payment, items.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = make_sessionmaker(engine)

    async def ensure_schema(self) -> None:
        try:
            await ensure_database(self.engine)
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"cannot prepare schema: {e}") from e
        logger.info("[Orders] Schema is ready")

    async def insert_order(self, order: Order) -> None:
        """
        Сохраняет заказ целиком в одной транзакции.

        Каждая таблица пишется отдельным flush, поэтому ошибка на любом шаге
        (в том числе дубликат order_uid или transaction) откатывает всё.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(_order_record(order))
                    await session.flush()

                    session.add(_delivery_record(order))
                    await session.flush()

                    session.add(_payment_record(order))
                    await session.flush()

                    session.add_all(_item_records(order))
                    await session.flush()
        except (SQLAlchemyError, OSError) as e:
            raise PersistError(f"order {order.order_id}: {e}") from e

    async def get_all_orders(self) -> List[Order]:
        """
        Восстанавливает все заказы одним JOIN-запросом.

        Строк на заказ столько, сколько у него товаров, поэтому строки
        группируются по order_uid, а товары накапливаются в списке.
        """
        stmt = (
            select(OrderRecord, DeliveryRecord, PaymentRecord, ItemRecord)
            .join(DeliveryRecord, DeliveryRecord.order_uid == OrderRecord.order_uid)
            .join(PaymentRecord, PaymentRecord.order_uid == OrderRecord.order_uid)
            .outerjoin(ItemRecord, ItemRecord.order_uid == OrderRecord.order_uid)
            .order_by(OrderRecord.date_created, OrderRecord.order_uid, ItemRecord.id)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"cannot read orders: {e}") from e

        grouped: Dict[str, dict] = {}
        for order_rec, delivery_rec, payment_rec, item_rec in rows:
            draft = grouped.get(order_rec.order_uid)
            if draft is None:
                draft = _order_fields(order_rec, delivery_rec, payment_rec)
                grouped[order_rec.order_uid] = draft
            if item_rec is not None:
                draft["items"].append(_item_from_record(item_rec))

        return [Order(**fields) for fields in grouped.values()]

    async def count_items(self, order_id: str) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(ItemRecord).where(ItemRecord.order_uid == order_id)
                )
                return result.scalar_one()
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"cannot count items of {order_id}: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("[Orders] Database engine disposed")


def _order_record(order: Order) -> OrderRecord:
    return OrderRecord(
        order_uid=order.order_id,
        track_number=order.track_number,
        entry=order.entry,
        locale=order.locale,
        internal_signature=order.internal_signature,
        customer_id=order.customer_id,
        delivery_service=order.delivery_service,
        shardkey=order.shard_key,
        sm_id=order.sm_id,
        date_created=order.date_created,
        oof_shard=order.oof_shard,
    )

def _delivery_record(order: Order) -> DeliveryRecord:
    return DeliveryRecord(order_uid=order.order_id, **order.delivery.model_dump())

def _payment_record(order: Order) -> PaymentRecord:
    fields = order.payment.model_dump()
    return PaymentRecord(
        order_uid=order.order_id,
        transaction=fields.pop("transaction_id"),
        **fields,
    )

def _item_records(order: Order) -> List[ItemRecord]:
    return [ItemRecord(order_uid=order.order_id, **item.model_dump()) for item in order.items]


def _order_fields(order_rec: OrderRecord, delivery_rec: DeliveryRecord, payment_rec: PaymentRecord) -> dict:
    return {
        "order_id": order_rec.order_uid,
        "track_number": order_rec.track_number,
        "entry": order_rec.entry,
        "locale": order_rec.locale,
        "internal_signature": order_rec.internal_signature,
        "customer_id": order_rec.customer_id,
        "delivery_service": order_rec.delivery_service,
        "shard_key": order_rec.shardkey,
        "sm_id": order_rec.sm_id,
        "date_created": order_rec.date_created,
        "oof_shard": order_rec.oof_shard,
        "delivery": Delivery(
            name=delivery_rec.name,
            phone=delivery_rec.phone,
            zip=delivery_rec.zip,
            city=delivery_rec.city,
            address=delivery_rec.address,
            region=delivery_rec.region,
            email=delivery_rec.email,
        ),
        "payment": Payment(
            transaction_id=payment_rec.transaction,
            request_id=payment_rec.request_id,
            currency=payment_rec.currency,
            provider=payment_rec.provider,
            amount=payment_rec.amount,
            payment_dt=payment_rec.payment_dt,
            bank=payment_rec.bank,
            delivery_cost=payment_rec.delivery_cost,
            goods_total=payment_rec.goods_total,
            custom_fee=payment_rec.custom_fee,
        ),
        "items": [],
    }

def _item_from_record(rec: ItemRecord) -> Item:
    return Item(
        chrt_id=rec.chrt_id,
        track_number=rec.track_number,
        price=rec.price,
        rid=rec.rid,
        name=rec.name,
        sale=rec.sale,
        size=rec.size,
        total_price=rec.total_price,
        nm_id=rec.nm_id,
        brand=rec.brand,
        status=rec.status,
    )
