"""
Cart state kept on the client side of the checkout.

The cart lives in a single named storage slot (``"cart"``) holding the JSON
list of items. Every surface that shows the cart reads it through a
``CartStore``, never through the storage directly. A mutation:

1. writes the whole serialized list back to the same slot;
2. notifies the store's own subscribers and sends ``cart_changed``;
3. lets the storage broadcast the change to the *other* stores bound to the
   same slot (a checkout can finish in a different browsing context than
   the one that built the cart).

If the storage cannot be written the mutation is dropped, and if it cannot
be read the cart is treated as empty.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

from .signals import cart_changed

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"


# ======================================================================
# Storage
# ======================================================================
class StorageError(Exception):
    pass


class StorageUnavailable(StorageError):
    pass


class StorageQuotaExceeded(StorageError):
    pass


StorageListener = Callable[[str, Optional[str], Any], None]


class CartStorage:
    """Key/value slot with change listeners (listener(key, new_value, source))."""

    def __init__(self):
        self._listeners: List[StorageListener] = []

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, source: Any = None) -> None:
        raise NotImplementedError

    def remove(self, key: str, source: Any = None) -> None:
        raise NotImplementedError

    def add_listener(self, listener: StorageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StorageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _broadcast(self, key: str, value: Optional[str], source: Any) -> None:
        for listener in list(self._listeners):
            listener(key, value, source)


class MemoryCartStorage(CartStorage):
    """
    Storage shared by several stores, one per browsing context.
    ``quota`` is the maximum size in bytes of a stored value.
    """

    def __init__(self, quota: Optional[int] = None):
        super().__init__()
        self._data: Dict[str, str] = {}
        self.quota = quota
        self.available = True

    def get(self, key: str) -> Optional[str]:
        if not self.available:
            raise StorageUnavailable("storage is not available")
        return self._data.get(key)

    def set(self, key: str, value: str, source: Any = None) -> None:
        if not self.available:
            raise StorageUnavailable("storage is not available")
        if self.quota is not None and len(value.encode("utf-8")) > self.quota:
            raise StorageQuotaExceeded(f"value for {key!r} exceeds {self.quota} bytes")
        self._data[key] = value
        self._broadcast(key, value, source)

    def remove(self, key: str, source: Any = None) -> None:
        if not self.available:
            raise StorageUnavailable("storage is not available")
        self._data.pop(key, None)
        self._broadcast(key, None, source)


class SessionCartStorage(CartStorage):
    """The Django session of the requesting client."""

    def __init__(self, session):
        super().__init__()
        self.session = session

    def get(self, key: str) -> Optional[str]:
        value = self.session.get(key)
        if value is None or isinstance(value, str):
            return value
        # older sessions stored the list itself
        return json.dumps(value)

    def set(self, key: str, value: str, source: Any = None) -> None:
        self.session[key] = value
        self.session.modified = True
        self._broadcast(key, value, source)

    def remove(self, key: str, source: Any = None) -> None:
        self.session.pop(key, None)
        self.session.modified = True
        self._broadcast(key, None, source)


# ======================================================================
# Items
# ======================================================================
@dataclass
class CartItem:
    id: int
    name: str
    price: Decimal
    quantity: int = 1
    image: str = ""

    @classmethod
    def from_product(cls, product, quantity: int = 1) -> "CartItem":
        return cls(
            id=int(product.id),
            name=product.name,
            price=Decimal(str(product.price)),
            quantity=quantity,
            image=getattr(product, "image_url", "") or getattr(product, "image", "") or "",
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            price=Decimal(str(data.get("price", "0"))),
            quantity=int(data.get("quantity", 1)),
            image=str(data.get("image") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "image": self.image,
        }

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


def dumps_items(items: List[CartItem]) -> str:
    return json.dumps([it.to_dict() for it in items])


def loads_items(raw: Optional[str]) -> List[CartItem]:
    if not raw:
        return []
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("cart must be a list")
    items = []
    for entry in data:
        try:
            item = CartItem.from_dict(entry)
        except (KeyError, TypeError, ValueError, InvalidOperation):
            continue
        if item.quantity >= 1:
            items.append(item)
    return items


# ======================================================================
# Store
# ======================================================================
CartListener = Callable[[List[CartItem]], None]


class CartStore:
    def __init__(self, storage: CartStorage, key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.key = key
        self._listeners: List[CartListener] = []
        storage.add_listener(self._on_storage_event)

    def close(self) -> None:
        self.storage.remove_listener(self._on_storage_event)
        self._listeners.clear()

    # ---------- reading ----------
    def items(self) -> List[CartItem]:
        try:
            return loads_items(self.storage.get(self.key))
        except StorageError as e:
            logger.warning(f"Cart storage unavailable, treating cart as empty: {e}")
        except ValueError as e:
            logger.warning(f"Corrupted cart in storage, treating cart as empty: {e}")
        return []

    @property
    def count(self) -> int:
        return sum(it.quantity for it in self.items())

    @property
    def total(self) -> Decimal:
        return sum((it.line_total for it in self.items()), Decimal("0"))

    # ---------- subscriptions ----------
    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, items: List[CartItem]) -> None:
        for listener in list(self._listeners):
            listener(items)
        cart_changed.send(sender=CartStore, store=self, items=items)

    def _on_storage_event(self, key: str, value: Optional[str], source: Any) -> None:
        # our own writes are already announced by _commit
        if key != self.key or source is self:
            return
        self._notify(self.items())

    # ---------- mutations ----------
    def _commit(self, items: List[CartItem]) -> bool:
        try:
            self.storage.set(self.key, dumps_items(items), source=self)
        except StorageError as e:
            logger.warning(f"Cart mutation dropped, storage write failed: {e}")
            return False
        self._notify(items)
        return True

    def add_item(self, product, quantity: int = 1) -> List[CartItem]:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")
        new = product if isinstance(product, CartItem) else CartItem.from_product(product)

        items = self.items()
        for it in items:
            if it.id == new.id:
                it.quantity += quantity
                break
        else:
            items.append(CartItem(new.id, new.name, new.price, quantity, new.image))
        self._commit(items)
        return self.items()

    def update_quantity(self, item_id: int, quantity: int) -> List[CartItem]:
        # not a removal: use remove_item for that
        if quantity <= 0:
            return self.items()
        items = self.items()
        for it in items:
            if it.id == int(item_id):
                it.quantity = quantity
                self._commit(items)
                break
        return self.items()

    def remove_item(self, item_id: int) -> List[CartItem]:
        items = [it for it in self.items() if it.id != int(item_id)]
        self._commit(items)
        return self.items()

    def clear(self) -> None:
        self._commit([])
