"""
cart.py — Cart Store

Holds one order session's requested quantities as a plain productId → quantity
mapping. Names and prices are never stored: every read joins the quantities with
the current catalog, so totals follow catalog and availability changes without
any cart mutation.
"""

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping

from .models import CartLine, SellableProduct

log = logging.getLogger(__name__)

CatalogProvider = Callable[[], Mapping[str, SellableProduct]]


def clamp_quantity(value: Any) -> int:
    """Floors a requested quantity to a non-negative integer; unusable input becomes 0."""
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return 0
    return int(math.floor(number))


class CartStore:
    """
    Quantity mapping for one order session.

    Args:
        catalog (Callable): Returns the current SellableProduct mapping keyed by id.
            Called on every read, never cached.
    """

    def __init__(self, catalog: CatalogProvider):
        self._catalog = catalog
        self._quantities: Dict[str, int] = {}
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Registers a callback fired after every user-driven quantity change."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _addable(self, product_id: str) -> bool:
        sellable = self._catalog().get(product_id)
        if sellable is not None and not sellable.orderable:
            log.warning(f"[Cart] UnpricedProduct: '{sellable.name}' ({product_id}) has no price and cannot be ordered.")
            return False
        return True

    def track(self, product_ids: Iterable[str]) -> None:
        """Zero-fills products not yet in the cart. Does not notify listeners."""
        for product_id in product_ids:
            self._quantities.setdefault(product_id, 0)

    def quantity(self, product_id: str) -> int:
        return self._quantities.get(product_id, 0)

    def add_one(self, product_id: str) -> int:
        if not self._addable(product_id):
            return self.quantity(product_id)
        self._quantities[product_id] = self.quantity(product_id) + 1
        self._changed()
        return self._quantities[product_id]

    def remove_one(self, product_id: str) -> int:
        self._quantities[product_id] = max(0, self.quantity(product_id) - 1)
        self._changed()
        return self._quantities[product_id]

    def set_quantity(self, product_id: str, value: Any) -> int:
        quantity = clamp_quantity(value)
        if quantity > 0 and not self._addable(product_id):
            return self.quantity(product_id)
        self._quantities[product_id] = quantity
        self._changed()
        return quantity

    def remove(self, product_id: str) -> int:
        return self.set_quantity(product_id, 0)

    def clear(self) -> None:
        """Resets every tracked quantity to 0, keeping the keys."""
        for product_id in self._quantities:
            self._quantities[product_id] = 0
        self._changed()

    def lines(self) -> List[CartLine]:
        """
        Returns all entries with quantity > 0, priced from the current catalog.

        A product that has dropped out of the catalog is still listed (named by
        its id, priced at 0) so that validation can report it.
        """
        catalog = self._catalog()
        result: List[CartLine] = []
        for product_id, quantity in self._quantities.items():
            if quantity <= 0:
                continue
            sellable = catalog.get(product_id)
            result.append(CartLine(
                productId=product_id,
                name=sellable.name if sellable else product_id,
                quantity=quantity,
                price=sellable.displayPrice if sellable else 0.0,
            ))
        return result

    def line_count(self) -> int:
        return len(self.lines())

    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines())

    def subtotal(self) -> float:
        return sum(line.lineTotal for line in self.lines())
