import pytest
from sqlalchemy import func, select

from order_store.db import make_engine
from order_store.errors import PersistError, StorageError
from order_store.models import OrderRecord, PaymentRecord
from order_store.storage import OrderStorage

from conftest import make_order

pytestmark = pytest.mark.anyio


async def _count(storage, model, order_id):
    async with storage.session_factory() as session:
        stmt = select(func.count()).select_from(model).where(model.order_uid == order_id)
        return (await session.execute(stmt)).scalar_one()


async def test_ensure_schema_is_idempotent(storage):
    await storage.ensure_schema()
    await storage.ensure_schema()

    assert await storage.get_all_orders() == []


async def test_insert_then_get_all_returns_every_item(storage, sample_order):
    await storage.insert_order(sample_order)

    orders = await storage.get_all_orders()

    assert orders == [sample_order]
    assert [item.chrt_id for item in orders[0].items] == [111, 222]
    assert await storage.count_items("abc-1") == 2


async def test_get_all_groups_rows_per_order(storage):
    first = make_order(order_id="o-1")
    second = make_order(order_id="o-2", items=[])
    third = make_order(order_id="o-3")
    for order in (first, second, third):
        await storage.insert_order(order)

    orders = {order.order_id: order for order in await storage.get_all_orders()}

    assert set(orders) == {"o-1", "o-2", "o-3"}
    assert orders["o-1"] == first
    assert orders["o-2"].items == []
    assert len(orders["o-3"].items) == 2


async def test_duplicate_order_id_is_rejected(storage, sample_order):
    await storage.insert_order(sample_order)

    with pytest.raises(PersistError):
        await storage.insert_order(sample_order)

    assert await _count(storage, OrderRecord, "abc-1") == 1
    assert await storage.count_items("abc-1") == 2
    assert len(await storage.get_all_orders()) == 1


async def test_failed_insert_leaves_no_partial_rows(storage, sample_order):
    await storage.insert_order(sample_order)
    # same payment transaction under a new order id fails on the payment table
    clash = make_order(order_id="abc-2", transaction="abc-1-tx")

    with pytest.raises(PersistError):
        await storage.insert_order(clash)

    assert await _count(storage, OrderRecord, "abc-2") == 0
    assert await _count(storage, PaymentRecord, "abc-2") == 0
    assert await storage.count_items("abc-2") == 0


async def test_unreachable_database_is_storage_error():
    storage = OrderStorage(make_engine("postgresql+asyncpg://u:p@127.0.0.1:1/db"))
    try:
        with pytest.raises(PersistError):
            await storage.insert_order(make_order())
        with pytest.raises(StorageError):
            await storage.get_all_orders()
        with pytest.raises(StorageError):
            await storage.count_items("abc-1")
    finally:
        await storage.close()
