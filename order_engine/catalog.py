"""
catalog.py — Catalog Merging

Joins every catalog product with its resolved availability to produce the
SellableProduct list the views and the cart read from. The merger is a pure
function: call it again whenever any of the three sources changes.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .availability import resolve_availability, resolve_price
from .models import InventoryRecord, Product, SellableProduct, StockRecord

T = TypeVar("T")


def merge_catalog(products: Iterable[Product],
                  inventory: Iterable[InventoryRecord],
                  stock: Iterable[StockRecord],
                  supplier_id: Optional[str] = None) -> List[SellableProduct]:
    """
    Builds exactly one SellableProduct per catalog product, in catalog order.

    Products without any availability record keep availableStock=None and are
    priced from the catalog.
    """
    availability = resolve_availability(inventory, stock, supplier_id)
    sellables: List[SellableProduct] = []
    for product in products:
        resolved = availability.get(product.id)
        price, price_source = resolve_price(product, resolved)
        sellables.append(SellableProduct(
            id=product.id,
            name=product.name,
            brand=product.brand,
            category=product.category,
            unit=product.unit,
            image=product.images[0] if product.images else None,
            displayPrice=price,
            availableStock=resolved.quantity if resolved else None,
            supplierId=resolved.supplierId if resolved else None,
            supplierName=resolved.supplierName if resolved else None,
            priceSource=price_source,
        ))
    return sellables


def index_catalog(sellables: Iterable[SellableProduct]) -> Dict[str, SellableProduct]:
    return {sellable.id: sellable for sellable in sellables}


def filter_products(sellables: Sequence[SellableProduct], query: str) -> List[SellableProduct]:
    """Case-insensitive substring search over name, brand, unit and category."""
    q = (query or "").strip().lower()
    if not q:
        return list(sellables)
    return [
        s for s in sellables
        if q in s.name.lower() or q in s.brand.lower() or q in s.unit.lower() or q in s.category.lower()
    ]


def paginate(items: Sequence[T], page: int, per_page: int) -> Tuple[List[T], int, int]:
    """
    Returns (page_items, page, total_pages) with page clamped into range.

    There is always at least one page, even for an empty list.
    """
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), page, total_pages
