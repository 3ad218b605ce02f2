"""Генератор синтетических заказов на Faker.

Используется в тестах и через ``python -m order_store.generator``
для отправки фейковых заказов в очередь работающего стенда.
"""

import argparse
import asyncio
import logging
import random
import uuid

from faker import Faker

from order_store.config import Settings
from order_store.messaging import RabbitConnection
from order_store.schemas import Delivery, Item, Order, Payment, encode_order

logger = logging.getLogger("orders.generator")

fake = Faker()


def fake_item(track_number: str) -> Item:
    price = random.randint(100, 1000)
    sale = random.randint(0, 50)
    return Item(
        chrt_id=random.randint(1_000_000, 9_999_999),
        track_number=track_number,
        price=price,
        rid=uuid.uuid4().hex,
        name=fake.word(),
        sale=sale,
        size=random.choice(["0", "S", "M", "L", "XL"]),
        total_price=price * (100 - sale) // 100,
        nm_id=random.randint(100_000, 999_999),
        brand=fake.company(),
        status=random.randint(1, 300),
    )


def fake_order(items: int = 1) -> Order:
    """Создаёт валидный заказ с ``items`` товарами."""
    track_number = f"WB{uuid.uuid4().hex[:10].upper()}"
    order_items = [fake_item(track_number) for _ in range(items)]
    goods_total = sum(item.total_price for item in order_items)
    delivery_cost = random.randint(100, 2000)
    return Order(
        order_id=uuid.uuid4().hex,
        track_number=track_number,
        entry="WBIL",
        delivery=Delivery(
            name=fake.name(),
            phone=fake.phone_number(),
            zip=fake.zipcode(),
            city=fake.city(),
            address=fake.street_address(),
            region=fake.state(),
            email=fake.email(),
        ),
        payment=Payment(
            transaction_id=uuid.uuid4().hex,
            request_id=None,
            currency="USD",
            provider="wbpay",
            amount=goods_total + delivery_cost,
            payment_dt=int(fake.date_time_this_year().timestamp()),
            bank=fake.company(),
            delivery_cost=delivery_cost,
            goods_total=goods_total,
            custom_fee=0,
        ),
        items=order_items,
        locale="en",
        internal_signature=None,
        customer_id=fake.user_name(),
        delivery_service=fake.company(),
        shard_key=random.randint(1, 10),
        sm_id=random.randint(1, 100),
        date_created=fake.date_time_this_year().replace(microsecond=0),
        oof_shard="1",
    )


async def publish_fake_orders(rabbit: RabbitConnection, count: int, delay: float = 0.3) -> None:
    for n in range(1, count + 1):
        order = fake_order(items=random.randint(1, 3))
        await rabbit.publish(encode_order(order))
        logger.info("[Orders] Published fake order %s (%d/%d)", order.order_id, n, count)
        if delay:
            await asyncio.sleep(delay)


async def _main(count: int, delay: float) -> None:
    rabbit = RabbitConnection(Settings())
    await rabbit.connect()
    try:
        await publish_fake_orders(rabbit, count, delay)
    finally:
        await rabbit.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Publish fake orders to the orders queue")
    parser.add_argument("--count", type=int, default=3)
    parser.add_argument("--delay", type=float, default=0.3)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(_main(args.count, args.delay))
