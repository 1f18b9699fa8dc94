"""
Pydantic models for the storefront wire format.

The backend and the stored anonymous cart both use camelCase keys; every
model accepts either the alias or the Python field name.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Cart
# ============================================================================

class ProductSnapshot(WireModel):
    """Denormalised product data carried by a cart line."""
    id: int = Field(..., description="Product ID")
    name: str = Field(..., description="Product display name")
    unit_price: float = Field(..., alias="price", description="List price")
    discounted_price: Optional[float] = Field(None, description="Sale price, when discounted")
    original_price: Optional[float] = Field(None, description="Pre-sale price shown struck through")
    image: str = Field("", description="Primary image URL")
    stock_available: int = Field(999, alias="stock", description="Units in stock (999 for client-side lines)")

    @property
    def effective_price(self) -> float:
        return self.discounted_price if self.discounted_price is not None else self.unit_price


class CartLine(WireModel):
    """One product-and-quantity entry in a cart."""
    line_id: int = Field(..., alias="id", description="Server id, or client token for anonymous carts")
    product_id: int = Field(..., description="Product ID")
    quantity: int = Field(..., ge=1, description="Always >= 1; zero means remove")
    product: ProductSnapshot

    @property
    def line_total(self) -> float:
        return self.product.effective_price * self.quantity


class AddToCartBody(WireModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class UpdateQuantityBody(WireModel):
    quantity: int = Field(..., ge=1)


# ============================================================================
# Admin inbox (polled)
# ============================================================================

class InboxItem(WireModel):
    """Support request or contact message; only the status matters for badges."""
    id: int
    status: str


# ============================================================================
# Live chat
# ============================================================================

class ChatSession(WireModel):
    """One customer conversation as listed to admins."""
    chat_id: str = Field(..., alias="id")
    user_id: Optional[str] = None
    user_name: str = "Anonymous"
    user_phone: Optional[str] = None
    preferred_language: Optional[str] = None
    start_time: Optional[datetime] = None
    last_message_time: Optional[datetime] = None
    has_admin: bool = False
    admin_name: Optional[str] = None
    message_count: int = 0


class ChatMessage(WireModel):
    id: str
    sender_id: str
    sender_name: str
    sender_type: str = Field(..., description="'user' or 'admin'")
    chat_id: str
    content: str
    timestamp: datetime


class ParticipantInfo(WireModel):
    """Customer details sent with chat_joined."""
    name: Optional[str] = None
    phone: Optional[str] = None
    preferred_language: Optional[str] = None

