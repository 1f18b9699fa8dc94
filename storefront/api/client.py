"""
Async REST client for the storefront backend.

Thin wrapper over httpx.AsyncClient that maps HTTP outcomes onto the
package's error taxonomy:
  401            -> UnauthorizedError
  other non-2xx  -> BackendError (carrying the server's "message" if any)
  no response    -> BackendUnavailable
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from storefront.api.models import AddToCartBody, CartLine, InboxItem, UpdateQuantityBody
from storefront.errors import BackendError, BackendUnavailable, UnauthorizedError
from storefront.utils.logger import get_logger

logger = get_logger("api.client")


class StorefrontClient:
    """
    Client for the cart, auth and admin inbox endpoints.

    Pass http_client to reuse a configured httpx.AsyncClient (tests mount an
    httpx.MockTransport this way); it must already carry the base URL.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.RequestError as e:
            logger.error(f"client: {method} {path} request failed: {e}")
            raise BackendUnavailable(str(e)) from e

        if resp.status_code == 401:
            raise UnauthorizedError(_error_message(resp))
        if resp.is_error:
            message = _error_message(resp)
            logger.warning(f"client: {method} {path} HTTP {resp.status_code} message={message}")
            raise BackendError(resp.status_code, message)
        return resp

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_current_user(self) -> Optional[Dict[str, Any]]:
        """Return the signed-in user, or None when the session is anonymous."""
        try:
            resp = await self._request("GET", "/api/auth/user")
        except UnauthorizedError:
            return None
        return resp.json()

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    async def get_cart(self) -> List[CartLine]:
        rows = await self._get_list("/api/cart")

        lines = []
        for row in rows:
            try:
                lines.append(CartLine.model_validate(row))
            except ValidationError as e:
                logger.warning(f"client: skipping invalid cart row {row!r}: {e}")
        return lines

    async def add_cart_item(self, product_id: int, quantity: int) -> None:
        body = AddToCartBody(product_id=product_id, quantity=quantity)
        await self._request("POST", "/api/cart", json=body.to_wire())

    async def update_cart_item(self, line_id: int, quantity: int) -> None:
        body = UpdateQuantityBody(quantity=quantity)
        await self._request("PUT", f"/api/cart/{line_id}", json=body.to_wire())

    async def remove_cart_item(self, line_id: int) -> None:
        await self._request("DELETE", f"/api/cart/{line_id}")

    async def clear_cart(self) -> None:
        await self._request("DELETE", "/api/cart")

    # ------------------------------------------------------------------
    # Admin inbox
    # ------------------------------------------------------------------

    async def list_support_requests(self) -> List[InboxItem]:
        return await self._list_inbox("/api/support/requests")

    async def list_contact_messages(self) -> List[InboxItem]:
        return await self._list_inbox("/api/contact/messages")

    async def _get_list(self, path: str) -> List[Any]:
        resp = await self._request("GET", path)
        try:
            rows = resp.json()
        except ValueError as e:
            raise BackendError(resp.status_code, f"{path} returned invalid JSON") from e
        if not isinstance(rows, list):
            raise BackendError(resp.status_code, f"{path} response is not a list")
        return rows

    async def _list_inbox(self, path: str) -> List[InboxItem]:
        rows = await self._get_list(path)
        try:
            return [InboxItem.model_validate(row) for row in rows]
        except ValidationError as e:
            raise BackendError(200, f"{path} returned malformed items: {e.error_count()} errors") from e


def _error_message(resp: httpx.Response) -> Optional[str]:
    """Pull the "message" field out of an error body, if it is JSON."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:500] or None
    if isinstance(data, dict):
        return data.get("message")
    return None
