"""
Cart storage strategies.

RemoteCartBackend treats the server as the source of truth and re-reads the
whole cart after every mutation. LocalCartBackend is the source of truth for
anonymous carts and writes the full line list through to durable storage
after every change.

Every method returns the new authoritative line list; a method that raises
has changed nothing.
"""

import json
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import ValidationError

from storefront.api.client import StorefrontClient
from storefront.api.models import CartLine, ProductSnapshot
from storefront.storage.local_store import KeyValueStorage
from storefront.utils.logger import get_logger

logger = get_logger("cart.backends")


class CartMode(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class CartBackend(ABC):
    mode: CartMode

    @abstractmethod
    async def fetch(self) -> List[CartLine]:
        ...

    @abstractmethod
    async def add(self, product_id: int, quantity: int, snapshot: ProductSnapshot) -> List[CartLine]:
        ...

    @abstractmethod
    async def update(self, line_id: int, quantity: int) -> List[CartLine]:
        ...

    @abstractmethod
    async def remove(self, line_id: int) -> List[CartLine]:
        ...

    @abstractmethod
    async def clear(self) -> List[CartLine]:
        ...


class RemoteCartBackend(CartBackend):
    """Server cart; the backend owns quantity merging and stock clamping."""

    mode = CartMode.REMOTE

    def __init__(self, client: StorefrontClient):
        self.client = client

    async def fetch(self) -> List[CartLine]:
        return await self.client.get_cart()

    async def add(self, product_id: int, quantity: int, snapshot: ProductSnapshot) -> List[CartLine]:
        await self.client.add_cart_item(product_id, quantity)
        return await self.fetch()

    async def update(self, line_id: int, quantity: int) -> List[CartLine]:
        await self.client.update_cart_item(line_id, quantity)
        return await self.fetch()

    async def remove(self, line_id: int) -> List[CartLine]:
        await self.client.remove_cart_item(line_id)
        return await self.fetch()

    async def clear(self) -> List[CartLine]:
        await self.client.clear_cart()
        return []


class LocalCartBackend(CartBackend):
    """
    Anonymous cart kept in durable client storage under one key, as a JSON
    array of camelCase lines.

    Line ids for new lines are millisecond timestamps, bumped when needed so
    they stay strictly increasing within this backend.
    """

    mode = CartMode.LOCAL

    def __init__(self, storage: KeyValueStorage, key: str = "cart", lines: Optional[Iterable[CartLine]] = None):
        self.storage = storage
        self.key = key
        self.lines: List[CartLine] = list(lines or [])
        self._last_line_id = max((line.line_id for line in self.lines), default=0)

    def restore(self) -> List[CartLine]:
        """Load the persisted cart; a corrupt entry is discarded, not raised."""
        raw = self.storage.get_item(self.key)
        if raw is None:
            self.lines = []
            return []

        try:
            rows = json.loads(raw)
            if not isinstance(rows, list):
                raise ValueError("stored cart is not a JSON array")
            lines = [CartLine.model_validate(row) for row in rows]
        except (ValueError, ValidationError) as e:
            logger.error(f"Error parsing stored cart, discarding it: {e}")
            self.storage.remove_item(self.key)
            lines = []

        self.lines = lines
        self._last_line_id = max([self._last_line_id] + [line.line_id for line in lines])
        return list(lines)

    def save(self) -> None:
        self._write(self.lines)

    def _write(self, lines: List[CartLine]) -> None:
        payload = json.dumps([line.to_wire() for line in lines])
        self.storage.set_item(self.key, payload)

    def _commit(self, lines: List[CartLine]) -> List[CartLine]:
        # Persist first so a failed write leaves the in-memory cart as it was
        self._write(lines)
        self.lines = lines
        return list(lines)

    def _next_line_id(self) -> int:
        candidate = int(time.time() * 1000)
        if candidate <= self._last_line_id:
            candidate = self._last_line_id + 1
        self._last_line_id = candidate
        return candidate

    async def fetch(self) -> List[CartLine]:
        return list(self.lines)

    async def add(self, product_id: int, quantity: int, snapshot: ProductSnapshot) -> List[CartLine]:
        lines = list(self.lines)
        for index, line in enumerate(lines):
            if line.product_id == product_id:
                lines[index] = line.model_copy(update={"quantity": line.quantity + quantity})
                return self._commit(lines)

        lines.append(CartLine(
            line_id=self._next_line_id(),
            product_id=product_id,
            quantity=quantity,
            product=snapshot,
        ))
        return self._commit(lines)

    async def update(self, line_id: int, quantity: int) -> List[CartLine]:
        lines = [
            line.model_copy(update={"quantity": quantity}) if line.line_id == line_id else line
            for line in self.lines
        ]
        return self._commit(lines)

    async def remove(self, line_id: int) -> List[CartLine]:
        return self._commit([line for line in self.lines if line.line_id != line_id])

    async def clear(self) -> List[CartLine]:
        self.storage.remove_item(self.key)
        self.lines = []
        return []
