class OrderStoreError(Exception):
    pass

class DecodeError(OrderStoreError):
    """Inbound payload is not a valid order."""

class StorageError(OrderStoreError):
    """System of record is unavailable or a query failed."""

class PersistError(StorageError):
    """An order could not be committed; the transaction was rolled back."""

class CacheError(OrderStoreError):
    """Read cache command failed."""

class OrderLookupError(CacheError):
    """Stored order fields could not be turned back into an order."""

class OrderNotFound(OrderLookupError):
    def __init__(self, order_id: str):
        super().__init__(f"order {order_id!r} is not cached")
        self.order_id = order_id
