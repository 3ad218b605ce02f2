"""Shared fixtures: sqlite-backed storage, fakeredis-backed cache, sample orders."""

import copy
import json

import pytest
from fakeredis import FakeAsyncRedis

from order_store.cache import RedisOrderCache
from order_store.db import make_engine
from order_store.schemas import Order
from order_store.storage import OrderStorage

# Payload in the upstream spelling (order_uid, shardkey, transaction).
SAMPLE_PAYLOAD = {
    "order_uid": "abc-1",
    "track_number": "WBILMTESTTRACK",
    "entry": "WBIL",
    "delivery": {
        "name": "Test Testov",
        "phone": "+9720000000",
        "zip": "2639809",
        "city": "Kiryat Mozkin",
        "address": "Ploshad Mira 15",
        "region": "Kraiot",
        "email": "test@gmail.com",
    },
    "payment": {
        "transaction": "abc-1-tx",
        "request_id": "",
        "currency": "USD",
        "provider": "wbpay",
        "amount": 1817,
        "payment_dt": 1637907727,
        "bank": "alpha",
        "delivery_cost": 1500,
        "goods_total": 317,
        "custom_fee": 0,
    },
    "items": [
        {
            "chrt_id": 111,
            "track_number": "WBILMTESTTRACK",
            "price": 453,
            "rid": "ab4219087a764ae0btest",
            "name": "Mascaras",
            "sale": 30,
            "size": "0",
            "total_price": 317,
            "nm_id": 2389212,
            "brand": "Vivienne Sabo",
            "status": 202,
        },
        {
            "chrt_id": 222,
            "track_number": "WBILMTESTTRACK",
            "price": 100,
            "rid": "cd4219087a764ae0btest",
            "name": "Brush",
            "sale": 0,
            "size": "M",
            "total_price": 100,
            "nm_id": 9934930,
            "brand": "Sabo",
            "status": 202,
        },
    ],
    "locale": "en",
    "internal_signature": "",
    "customer_id": "test",
    "delivery_service": "meest",
    "shardkey": "9",
    "sm_id": 99,
    "date_created": "2021-11-26T06:22:19Z",
    "oof_shard": "1",
}


def make_payload(order_id="abc-1", transaction=None, items=None, customer_id="test"):
    """Copy of the sample payload with a different id / transaction / items."""
    payload = copy.deepcopy(SAMPLE_PAYLOAD)
    payload["order_uid"] = order_id
    payload["payment"]["transaction"] = transaction or f"{order_id}-tx"
    payload["customer_id"] = customer_id
    if items is not None:
        payload["items"] = items
    return payload


def make_order(**kwargs) -> Order:
    return Order.model_validate(make_payload(**kwargs))


def raw_message(payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sample_order() -> Order:
    return make_order()


@pytest.fixture
async def storage(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    storage = OrderStorage(engine)
    await storage.ensure_schema()
    yield storage
    await storage.close()


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis) -> RedisOrderCache:
    return RedisOrderCache(redis)
