"""Pytest configuration and shared fakes for storefront tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from storefront.api.client import StorefrontClient
from storefront.errors import ChannelError, ChannelNotConnected, TransportClosed
from storefront.notify import Notifier
from storefront.realtime.transport import SocketConnection, SocketTransport
from storefront.storage.local_store import MemoryStorage

TEST_BASE_URL = "http://storefront.test"


# ---------------------------------------------------------------------------
# In-memory backend, mounted on httpx.MockTransport. Follows the real cart
# controller: 401 when signed out, add merges by product, stock is enforced
# with a 400 and the row carries the product snapshot.
# ---------------------------------------------------------------------------

class FakeStorefrontServer:

    def __init__(self, authenticated: bool = True):
        self.authenticated = authenticated
        self.products: Dict[int, Dict[str, Any]] = {
            1: {"id": 1, "name": "Desk lamp", "price": 100.0, "image": "lamp.jpg", "stock": 10},
            2: {"id": 2, "name": "Office chair", "price": 200.0, "originalPrice": 250.0,
                "discountedPrice": 200.0, "image": "chair.jpg", "stock": 5},
            3: {"id": 3, "name": "Notebook", "price": 5.0, "image": "", "stock": 2},
        }
        self.lines: List[Dict[str, int]] = []
        self.support_requests: List[Dict[str, Any]] = []
        self.contact_messages: List[Dict[str, Any]] = []
        self.requests: List[Tuple[str, str]] = []
        # (method, path) -> (status, body); returned instead of the normal answer
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self._next_id = 100

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=TEST_BASE_URL, transport=httpx.MockTransport(self.handle))

    def client(self) -> StorefrontClient:
        return StorefrontClient(TEST_BASE_URL, http_client=self.http_client())

    def add_line(self, product_id: int, quantity: int) -> int:
        self._next_id += 1
        self.lines.append({"id": self._next_id, "productId": product_id, "quantity": quantity})
        return self._next_id

    def _row(self, line: Dict[str, int]) -> Dict[str, Any]:
        return {**line, "product": self.products[line["productId"]]}

    def _find(self, line_id: int) -> Optional[Dict[str, int]]:
        return next((row for row in self.lines if row["id"] == line_id), None)

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))

        if (method, path) in self.failures:
            status, body = self.failures[(method, path)]
            return httpx.Response(status, json=body)

        if path == "/api/auth/user":
            if not self.authenticated:
                return httpx.Response(401, json={"message": "Not authenticated"})
            return httpx.Response(200, json={"id": 7, "username": "shopper"})

        if path == "/api/support/requests":
            return httpx.Response(200, json=self.support_requests)
        if path == "/api/contact/messages":
            return httpx.Response(200, json=self.contact_messages)

        if not path.startswith("/api/cart"):
            return httpx.Response(404, json={"message": "Not found"})
        if not self.authenticated:
            return httpx.Response(401, json={"message": "Authentication required"})

        body = json.loads(request.content) if request.content else {}

        if path == "/api/cart":
            if method == "GET":
                return httpx.Response(200, json=[self._row(row) for row in self.lines])
            if method == "DELETE":
                self.lines = []
                return httpx.Response(200, json={"success": True})
            if method == "POST":
                return self._add(body["productId"], body["quantity"])

        line_id = int(path.rsplit("/", 1)[-1])
        line = self._find(line_id)
        if line is None:
            return httpx.Response(404, json={"message": "Cart item not found"})
        if method == "PUT":
            if body["quantity"] > self.products[line["productId"]]["stock"]:
                return httpx.Response(400, json={"message": "Not enough stock available"})
            line["quantity"] = body["quantity"]
            return httpx.Response(200, json={"success": True})
        if method == "DELETE":
            self.lines.remove(line)
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405, json={"message": "Method not allowed"})

    def _add(self, product_id: int, quantity: int) -> httpx.Response:
        product = self.products.get(product_id)
        if product is None:
            return httpx.Response(404, json={"message": "Product not found"})
        existing = next((row for row in self.lines if row["productId"] == product_id), None)
        new_quantity = quantity + (existing["quantity"] if existing else 0)
        if new_quantity > product["stock"]:
            return httpx.Response(400, json={"message": "Not enough stock available"})
        if existing:
            existing["quantity"] = new_quantity
        else:
            self.add_line(product_id, quantity)
        return httpx.Response(201, json={"success": True})


# ---------------------------------------------------------------------------
# In-memory socket transport
# ---------------------------------------------------------------------------

_CLOSED = object()


class FakeConnection(SocketConnection):

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self._inbound: "asyncio.Queue[Any]" = asyncio.Queue()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def push(self, event: Any) -> None:
        """Queue one inbound frame; dicts are JSON-encoded, strings sent raw."""
        self._inbound.put_nowait(event if isinstance(event, str) else json.dumps(event))

    def drop(self) -> None:
        """Simulate the server closing the socket."""
        self._open = False
        self._inbound.put_nowait(_CLOSED)

    async def send(self, text: str) -> None:
        if not self._open:
            raise ChannelNotConnected("socket closed")
        self.sent.append(json.loads(text))

    async def recv(self) -> str:
        frame = await self._inbound.get()
        if frame is _CLOSED:
            raise TransportClosed("closed by server")
        return frame

    async def close(self) -> None:
        if self._open:
            self.drop()


class FakeTransport(SocketTransport):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.urls: List[str] = []
        self.connections: List[FakeConnection] = []

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]

    async def connect(self, url: str) -> SocketConnection:
        self.urls.append(url)
        if self.fail:
            raise ChannelError("connection refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def server():
    return FakeStorefrontServer()


@pytest.fixture
def anonymous_server():
    return FakeStorefrontServer(authenticated=False)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer STOREFRONT_* settings out of the tests."""
    for name in (
        "STOREFRONT_BASE_URL", "STOREFRONT_REQUEST_TIMEOUT", "STOREFRONT_CART_KEY",
        "STOREFRONT_STORAGE", "STOREFRONT_STORAGE_DIR", "REDIS_URL",
        "STOREFRONT_ADMIN_ID", "STOREFRONT_ADMIN_NAME",
        "STOREFRONT_RECONNECT_DELAY", "STOREFRONT_POLL_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)
