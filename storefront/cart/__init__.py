from storefront.cart.backends import CartBackend, CartMode, LocalCartBackend, RemoteCartBackend
from storefront.cart.store import CartState, CartStore

__all__ = [
    "CartBackend",
    "CartMode",
    "CartState",
    "CartStore",
    "LocalCartBackend",
    "RemoteCartBackend",
]
