"""
Tests for CartStore: mode selection, local persistence, remote refetch,
401 fallback, sign-in merge and the toast contract.

The backend is the in-memory FakeStorefrontServer; local storage is a
MemoryStorage shared across "reloads" to stand in for browser storage.
"""

import asyncio
import json
from contextlib import asynccontextmanager

import httpx
import pytest

from conftest import TEST_BASE_URL, settle
from storefront.api.client import StorefrontClient
from storefront.cart.backends import CartMode
from storefront.cart.store import CartStore
from storefront.notify import VARIANT_DESTRUCTIVE, VARIANT_WARNING, Notifier
from storefront.storage.local_store import MemoryStorage


def _run(coro):
    return asyncio.run(coro)


@asynccontextmanager
async def _open_store(server, storage, notifier=None):
    client = server.client()
    store = CartStore(client, storage, notifier=notifier or Notifier())
    await store.start()
    try:
        yield store
    finally:
        store.close()
        await client.aclose()


def _titles(notifier):
    return [toast.title for toast in notifier.history]


# ============================================================================
# Startup / mode selection
# ============================================================================

class TestStart:
    def test_authenticated_uses_server_cart(self, server, storage):
        server.add_line(1, 2)

        async def go():
            async with _open_store(server, storage) as store:
                return store.mode, store.lines

        mode, lines = _run(go())
        assert mode is CartMode.REMOTE
        assert [(line.product_id, line.quantity) for line in lines] == [(1, 2)]

    def test_anonymous_uses_local_cart(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                return store.mode

        assert _run(go()) is CartMode.LOCAL
        assert ("GET", "/api/cart") not in anonymous_server.requests

    def test_auth_probe_failure_falls_back_to_local(self, server, storage):
        server.failures[("GET", "/api/auth/user")] = (500, {"message": "boom"})

        async def go():
            async with _open_store(server, storage) as store:
                return store.mode

        assert _run(go()) is CartMode.LOCAL

    def test_corrupt_stored_cart_starts_empty(self, anonymous_server):
        storage = MemoryStorage({"cart": "not json at all"})

        async def go():
            async with _open_store(anonymous_server, storage) as store:
                return store.lines

        assert _run(go()) == ()
        assert storage.get_item("cart") is None


# ============================================================================
# Local mode
# ============================================================================

class TestLocalCart:
    def test_add_persists_across_reload(self, anonymous_server, storage):
        async def first_visit():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0, image="lamp.jpg")
                return store.lines

        async def reload():
            async with _open_store(anonymous_server, storage) as store:
                return store.lines

        before = _run(first_visit())
        after = _run(reload())
        assert after == before
        assert after[0].product.image == "lamp.jpg"

    def test_same_product_merges(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                return store.lines

        lines = _run(go())
        assert len(lines) == 1
        assert lines[0].quantity == 3

    def test_totals(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)
                await store.add_to_cart(2, 1, "Office chair", 250.0, discounted_price=200.0)
                return store.total_items, store.total_price

        assert _run(go()) == (3, 400.0)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_removes_line(self, anonymous_server, storage, quantity):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)
                line_id = store.lines[0].line_id
                await store.update_quantity(line_id, quantity)
                return store.lines

        assert _run(go()) == ()
        assert json.loads(storage.get_item("cart")) == []

    def test_update_and_remove(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                await store.add_to_cart(3, 1, "Notebook", 5.0)
                lamp, notebook = store.lines
                await store.update_quantity(lamp.line_id, 4)
                await store.remove_from_cart(notebook.line_id)
                return store.lines

        lines = _run(go())
        assert [(line.product_id, line.quantity) for line in lines] == [(1, 4)]

    def test_clear_removes_storage_entry(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                assert await store.clear_cart() is True
                return store.lines

        assert _run(go()) == ()
        assert storage.get_item("cart") is None

    def test_local_mode_never_calls_cart_api(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                await store.fetch_cart()
                await store.clear_cart()

        _run(go())
        assert [path for _, path in anonymous_server.requests] == ["/api/auth/user"]

    def test_rejects_zero_quantity_add(self, anonymous_server, storage, notifier):
        async def go():
            async with _open_store(anonymous_server, storage, notifier) as store:
                return await store.add_to_cart(1, 0, "Desk lamp", 100.0), store.lines

        added, lines = _run(go())
        assert added is False
        assert lines == ()
        assert notifier.history[-1].variant == VARIANT_DESTRUCTIVE


# ============================================================================
# Remote mode
# ============================================================================

class TestRemoteCart:
    def test_displayed_cart_is_server_answer(self, server, storage):
        # Another device already put product 3 in this account's cart
        server.add_line(3, 2)

        async def go():
            async with _open_store(server, storage) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                return store.lines

        lines = _run(go())
        shown = sorted((line.line_id, line.product_id, line.quantity) for line in lines)
        expected = sorted((row["id"], row["productId"], row["quantity"]) for row in server.lines)
        assert shown == expected
        assert storage.get_item("cart") is None

    def test_server_merges_quantities(self, server, storage):
        async def go():
            async with _open_store(server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)
                await store.add_to_cart(1, 3, "Desk lamp", 100.0)
                return store.lines

        lines = _run(go())
        assert len(lines) == 1
        assert lines[0].quantity == 5

    def test_zero_quantity_deletes_on_server(self, server, storage):
        line_id = server.add_line(1, 2)

        async def go():
            async with _open_store(server, storage) as store:
                await store.update_quantity(line_id, 0)
                return store.lines

        assert _run(go()) == ()
        assert ("DELETE", f"/api/cart/{line_id}") in server.requests
        assert ("PUT", f"/api/cart/{line_id}") not in server.requests

    def test_stock_rejection_keeps_cart_and_toasts_server_message(self, server, storage, notifier):
        async def go():
            async with _open_store(server, storage, notifier) as store:
                before = store.lines
                added = await store.add_to_cart(3, 5, "Notebook", 5.0)
                return before, store.lines, added

        before, after, added = _run(go())
        assert added is False
        assert after == before
        toast = notifier.history[-1]
        assert toast.title == "Error adding to cart"
        assert toast.description == "Not enough stock available"
        assert toast.variant == VARIANT_DESTRUCTIVE

    def test_update_rejection_toast(self, server, storage, notifier):
        line_id = server.add_line(3, 1)

        async def go():
            async with _open_store(server, storage, notifier) as store:
                return await store.update_quantity(line_id, 9), store.lines

        updated, lines = _run(go())
        assert updated is False
        assert lines[0].quantity == 1
        assert notifier.history[-1].title == "Error updating cart"

    def test_transport_failure_toasts_generic_error(self, storage, notifier):
        def handler(request):
            if request.url.path == "/api/auth/user":
                return httpx.Response(200, json={"id": 1})
            if request.method == "GET":
                return httpx.Response(200, json=[])
            raise httpx.ConnectError("connection reset", request=request)

        async def go():
            http = httpx.AsyncClient(base_url=TEST_BASE_URL, transport=httpx.MockTransport(handler))
            async with StorefrontClient(TEST_BASE_URL, http_client=http) as client:
                store = CartStore(client, storage, notifier=notifier)
                await store.start()
                return await store.add_to_cart(1, 1, "Desk lamp", 100.0), store.mode

        added, mode = _run(go())
        assert added is False
        assert mode is CartMode.REMOTE
        assert notifier.history[-1].title == "Error"
        assert "Please try again" in notifier.history[-1].description

    def test_concurrent_mutations_are_serialised(self, server, storage):
        async def go():
            async with _open_store(server, storage) as store:
                await asyncio.gather(
                    store.add_to_cart(1, 1, "Desk lamp", 100.0),
                    store.add_to_cart(2, 1, "Office chair", 200.0),
                    store.add_to_cart(1, 1, "Desk lamp", 100.0),
                )
                return store.lines, store.is_loading

        lines, loading = _run(go())
        assert loading is False
        assert sorted((line.product_id, line.quantity) for line in lines) == [(1, 2), (2, 1)]
        # Each POST is followed by its own GET before the next POST starts
        cart_calls = [method for method, path in server.requests if path == "/api/cart"]
        assert cart_calls[1:] == ["POST", "GET"] * 3


# ============================================================================
# 401 fallback
# ============================================================================

class TestSessionExpiry:
    def test_fetch_401_flips_to_local(self, server, storage, notifier):
        server.add_line(1, 2)

        async def go():
            async with _open_store(server, storage, notifier) as store:
                server.authenticated = False
                await store.fetch_cart()
                mode_after_401 = store.mode

                calls_before = len(server.requests)
                await store.add_to_cart(2, 1, "Office chair", 200.0)
                return mode_after_401, store.lines, len(server.requests) - calls_before

        mode, lines, new_calls = _run(go())
        assert mode is CartMode.LOCAL
        assert new_calls == 0
        stored = json.loads(storage.get_item("cart"))
        assert [row["productId"] for row in stored] == [1, 2]
        assert [line.product_id for line in lines] == [1, 2]
        assert notifier.history[0].title == "Session expired"
        assert notifier.history[0].variant == VARIANT_WARNING

    def test_mutation_401_is_not_replayed(self, server, storage):
        async def go():
            async with _open_store(server, storage) as store:
                server.authenticated = False
                added = await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                return added, store.mode, store.lines

        added, mode, lines = _run(go())
        assert added is False
        assert mode is CartMode.LOCAL
        assert lines == ()


# ============================================================================
# Sign-in / sign-out
# ============================================================================

class TestLoginMerge:
    def test_local_lines_move_to_account(self, anonymous_server, storage):
        server = anonymous_server

        async def go():
            async with _open_store(server, storage) as store:
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)
                await store.add_to_cart(2, 1, "Office chair", 200.0)
                server.authenticated = True
                merged = await store.login()
                return merged, store.mode, store.lines

        merged, mode, lines = _run(go())
        assert merged is True
        assert mode is CartMode.REMOTE
        assert sorted((row["productId"], row["quantity"]) for row in server.lines) == [(1, 2), (2, 1)]
        assert sorted(line.product_id for line in lines) == [1, 2]
        assert storage.get_item("cart") is None

    def test_refused_lines_stay_local(self, anonymous_server, storage, notifier):
        server = anonymous_server

        async def go():
            async with _open_store(server, storage, notifier) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                await store.add_to_cart(3, 5, "Notebook", 5.0)
                server.authenticated = True
                await store.login()

        _run(go())
        stored = json.loads(storage.get_item("cart"))
        assert [row["productId"] for row in stored] == [3]
        assert [row["productId"] for row in server.lines] == [1]
        assert "Some items were not moved" in _titles(notifier)

    def test_login_while_still_anonymous(self, anonymous_server, storage):
        async def go():
            async with _open_store(anonymous_server, storage) as store:
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)
                return await store.login(), store.mode

        assert _run(go()) == (False, CartMode.LOCAL)
        assert storage.get_item("cart") is not None

    def test_logout_returns_to_device_cart(self, server, storage):
        server.add_line(1, 1)

        async def go():
            async with _open_store(server, storage) as store:
                await store.logout()
                return store.mode, store.lines

        mode, lines = _run(go())
        assert mode is CartMode.LOCAL
        assert lines == ()
        assert server.lines  # account cart untouched


# ============================================================================
# Subscriptions and teardown
# ============================================================================

class TestSubscriptions:
    def test_loading_flag_brackets_operation(self, anonymous_server, storage):
        seen = []

        async def go():
            async with _open_store(anonymous_server, storage) as store:
                store.subscribe(lambda state: seen.append((state.is_loading, state.total_items)))
                await store.add_to_cart(1, 2, "Desk lamp", 100.0)

        _run(go())
        assert seen[0] == (True, 0)
        assert seen[-1] == (False, 2)

    def test_unsubscribe(self, anonymous_server, storage):
        seen = []

        async def go():
            async with _open_store(anonymous_server, storage) as store:
                unsubscribe = store.subscribe(seen.append)
                unsubscribe()
                await store.add_to_cart(1, 1, "Desk lamp", 100.0)

        _run(go())
        assert seen == []

    def test_closed_store_ignores_late_result(self, server, storage):
        async def go():
            gate = asyncio.Event()

            async def handler(request):
                await gate.wait()
                return server.handle(request)

            gate.set()
            http = httpx.AsyncClient(base_url=TEST_BASE_URL, transport=httpx.MockTransport(handler))
            async with StorefrontClient(TEST_BASE_URL, http_client=http) as client:
                store = CartStore(client, storage)
                await store.start()

                gate.clear()
                pending = asyncio.create_task(store.add_to_cart(1, 1, "Desk lamp", 100.0))
                await settle()
                store.close()
                gate.set()
                await pending
                return store.lines

        assert _run(go()) == ()
        # The server did take the add; only the display ignored it
        assert [row["productId"] for row in server.lines] == [1]

    def _gated_store(self, server, storage, notifier, gate):
        async def handler(request):
            await gate.wait()
            return server.handle(request)

        http = httpx.AsyncClient(base_url=TEST_BASE_URL, transport=httpx.MockTransport(handler))
        client = StorefrontClient(TEST_BASE_URL, http_client=http)
        return client, CartStore(client, storage, notifier=notifier)

    def test_closed_store_sends_no_toast(self, server, storage, notifier):
        async def go():
            gate = asyncio.Event()
            gate.set()
            client, store = self._gated_store(server, storage, notifier, gate)
            async with client:
                await store.start()
                gate.clear()
                pending = asyncio.create_task(store.add_to_cart(1, 1, "Desk lamp", 100.0))
                await settle()
                store.close()
                gate.set()
                await pending

        _run(go())
        assert list(notifier.history) == []

    def test_closed_store_ignores_session_expiry(self, server, storage, notifier):
        async def go():
            gate = asyncio.Event()
            gate.set()
            client, store = self._gated_store(server, storage, notifier, gate)
            async with client:
                await store.start()
                gate.clear()
                pending = asyncio.create_task(store.add_to_cart(1, 1, "Desk lamp", 100.0))
                await settle()
                store.close()
                server.authenticated = False
                gate.set()
                await pending
                return store.mode

        assert _run(go()) is CartMode.REMOTE
        assert list(notifier.history) == []
        assert storage.get_item("cart") is None
