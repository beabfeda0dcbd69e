from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from backend.schemas import Product


@dataclass
class CartLineItem:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id or ""

    @property
    def price(self) -> float:
        return self.product.price


class Cart:
    """
    Session-owned shopping cart.

    Quantities stay within [1, stock]. Hitting a stock boundary is not an
    error: mutators return False and leave the cart untouched so the caller
    can show a "max stock reached" hint.
    """

    def __init__(self) -> None:
        # dicts keep insertion order, which is the display order
        self._lines: dict[str, CartLineItem] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._lines

    def __iter__(self):
        return iter(list(self._lines.values()))

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def line_items(self) -> list[CartLineItem]:
        return list(self._lines.values())

    def get(self, product_id: str) -> Optional[CartLineItem]:
        return self._lines.get(product_id)

    def quantity_of(self, product_id: str) -> int:
        line = self._lines.get(product_id)
        return line.quantity if line else 0

    @property
    def subtotal(self) -> float:
        return sum(line.price * line.quantity for line in self._lines.values())

    def add_item(self, product: Product, initial_qty: int = 1) -> bool:
        """Insert a new line; already present or out-of-stock products are left alone."""
        if not product.id or product.id in self._lines:
            return False
        quantity = min(initial_qty, product.stock)
        if quantity < 1:
            return False
        self._lines[product.id] = CartLineItem(product=product, quantity=quantity)
        return True

    def increment_quantity(self, product_id: str) -> bool:
        line = self._lines.get(product_id)
        if line is None or line.quantity >= line.product.stock:
            return False
        line.quantity += 1
        return True

    def decrement_quantity(self, product_id: str) -> bool:
        line = self._lines.get(product_id)
        if line is None:
            return False
        if line.quantity > 1:
            line.quantity -= 1
        else:
            del self._lines[product_id]
        return True

    def remove_item(self, product_id: str) -> bool:
        return self._lines.pop(product_id, None) is not None

    def clear(self) -> None:
        self._lines.clear()

    def refresh_product(self, product: Product) -> bool:
        """Swap in the live product record; quantities above the new stock are pulled down."""
        line = self._lines.get(product.id or "")
        if line is None:
            return False
        line.product = product
        if product.stock < 1:
            del self._lines[product.id]
        elif line.quantity > product.stock:
            line.quantity = product.stock
        return True

    # Browser-local mirror holds ids and quantities only; prices and stock
    # always come from the catalog

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [
                {"product_id": line.product_id, "quantity": line.quantity}
                for line in self._lines.values()
            ]
        }

    @classmethod
    def from_lines(cls, lines: Iterable[tuple[str, int]], products: dict[str, Product]) -> "Cart":
        """Rebuild from (product_id, quantity) pairs; unknown products are dropped."""
        cart = cls()
        for product_id, quantity in lines:
            product = products.get(product_id)
            if product is not None:
                cart.add_item(product, quantity)
        return cart
