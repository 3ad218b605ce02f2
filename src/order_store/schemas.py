from datetime import datetime, timezone
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from order_store.errors import DecodeError


class Delivery(BaseModel):
    name: str
    phone: str
    zip: str
    city: str
    address: str
    region: str
    email: str


class Payment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., validation_alias=AliasChoices("transaction_id", "transaction"))
    request_id: Optional[str] = None
    currency: str
    provider: str
    amount: int = Field(..., description="Сумма в минимальных единицах валюты")
    payment_dt: int = Field(..., description="Unix timestamp оплаты")
    bank: str
    delivery_cost: int
    goods_total: int
    custom_fee: int

    @field_validator("request_id", mode="before")
    @classmethod
    def _empty_to_none(cls, value):
        return value or None


class Item(BaseModel):
    chrt_id: int
    track_number: str
    price: int
    rid: str
    name: str
    sale: int = Field(..., ge=0, le=100, description="Скидка в процентах")
    size: str
    total_price: int
    nm_id: int
    brand: str
    status: int


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., min_length=1, validation_alias=AliasChoices("order_id", "order_uid"))
    track_number: str
    entry: str
    delivery: Delivery
    payment: Payment
    items: List[Item] = Field(default_factory=list)
    locale: str
    internal_signature: Optional[str] = None
    customer_id: str
    delivery_service: str
    shard_key: int = Field(..., validation_alias=AliasChoices("shard_key", "shardkey"))
    sm_id: int
    date_created: datetime
    oof_shard: str

    @field_validator("internal_signature", mode="before")
    @classmethod
    def _empty_to_none(cls, value):
        return value or None

    @field_validator("date_created")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def decode_order(raw: bytes | str | None) -> Order:
    """
    Декодирует JSON-сообщение из очереди в Order.

    Любая ошибка (пустое тело, не UTF-8, невалидный JSON, нет обязательного
    поля) превращается в DecodeError.
    """
    if not raw:
        raise DecodeError("empty message body")
    try:
        return Order.model_validate_json(raw)
    except (ValidationError, UnicodeDecodeError) as e:
        raise DecodeError(str(e)) from e


def encode_order(order: Order) -> bytes:
    return order.model_dump_json().encode()
