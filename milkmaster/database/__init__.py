# Persistent cart state

from .carts import ANONYMOUS_CART_KEY, CartStore, partition_key

__all__ = ["ANONYMOUS_CART_KEY", "CartStore", "partition_key"]
