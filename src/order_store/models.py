from datetime import timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.types import TypeDecorator

from order_store.db import Base


class UTCDateTime(TypeDecorator):
    """Хранит время в UTC и всегда возвращает aware datetime."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class OrderRecord(Base):
    __tablename__ = "orders"

    order_uid = Column(String, primary_key=True)
    track_number = Column(String, nullable=False)
    entry = Column(String, nullable=False)
    locale = Column(String, nullable=False)
    internal_signature = Column(String, nullable=True)
    customer_id = Column(String, nullable=False)
    delivery_service = Column(String, nullable=False)
    shardkey = Column(Integer, nullable=False)
    sm_id = Column(Integer, nullable=False)
    date_created = Column(UTCDateTime, nullable=False)
    oof_shard = Column(String, nullable=False)

class DeliveryRecord(Base):
    __tablename__ = "delivery"

    order_uid = Column(String, ForeignKey("orders.order_uid"), primary_key=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    zip = Column(String, nullable=False)
    city = Column(String, nullable=False)
    address = Column(String, nullable=False)
    region = Column(String, nullable=False)
    email = Column(String, nullable=False)

class PaymentRecord(Base):
    __tablename__ = "payment"

    transaction = Column(String, primary_key=True)
    order_uid = Column(String, ForeignKey("orders.order_uid"), nullable=False, unique=True)
    request_id = Column(String, nullable=True)
    currency = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    payment_dt = Column(BigInteger, nullable=False)
    bank = Column(String, nullable=False)
    delivery_cost = Column(Integer, nullable=False)
    goods_total = Column(Integer, nullable=False)
    custom_fee = Column(Integer, nullable=False)

class ItemRecord(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_uid = Column(String, ForeignKey("orders.order_uid"), nullable=False, index=True)
    chrt_id = Column(BigInteger, nullable=False)
    track_number = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    rid = Column(String, nullable=False)
    name = Column(String, nullable=False)
    sale = Column(Integer, nullable=False)
    size = Column(String, nullable=False)
    total_price = Column(Integer, nullable=False)
    nm_id = Column(BigInteger, nullable=False)
    brand = Column(String, nullable=False)
    status = Column(Integer, nullable=False)
