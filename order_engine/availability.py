"""
availability.py — Availability Resolution

Picks one authoritative (price, quantity, supplier) triple per product.

Precedence:
    1. Inventory record: the one with the highest costPrice per product
       (first encountered wins ties). Supplies both price and quantity.
    2. Stock record: the one with the highest quantity per product
       (first encountered wins ties). Supplies quantity only.
    3. Nothing on record: quantity unknown (None, never zero).

Prices not supplied by inventory fall back to the catalog: tradePrice when
positive, else mrp, else 0 (unpriced).
"""

from typing import Dict, Iterable, Optional, Tuple

from .models import Availability, InventoryRecord, Product, StockRecord


def _in_scope(supplier_id: Optional[str], record_supplier: Optional[str]) -> bool:
    return supplier_id is None or record_supplier == supplier_id


def select_inventory(records: Iterable[InventoryRecord],
                     supplier_id: Optional[str] = None) -> Dict[str, InventoryRecord]:
    chosen: Dict[str, InventoryRecord] = {}
    for record in records:
        if not _in_scope(supplier_id, record.supplierId):
            continue
        current = chosen.get(record.productId)
        if current is None or record.costPrice > current.costPrice:
            chosen[record.productId] = record
    return chosen


def select_stock(records: Iterable[StockRecord],
                 supplier_id: Optional[str] = None) -> Dict[str, StockRecord]:
    chosen: Dict[str, StockRecord] = {}
    for record in records:
        if not _in_scope(supplier_id, record.supplierId):
            continue
        current = chosen.get(record.productId)
        if current is None or record.quantity > current.quantity:
            chosen[record.productId] = record
    return chosen


def resolve_availability(inventory: Iterable[InventoryRecord],
                         stock: Iterable[StockRecord],
                         supplier_id: Optional[str] = None) -> Dict[str, Availability]:
    """
    Resolves availability for every product referenced by inventory or stock.

    Args:
        inventory: Normalized inventory records.
        stock: Normalized legacy stock records.
        supplier_id (str | None): When given, only records attributed to this
            supplier are considered.

    Returns:
        Dict[str, Availability]: Availability keyed by product id. Products with
        no record in scope are absent.
    """
    resolved: Dict[str, Availability] = {}

    for product_id, record in select_stock(stock, supplier_id).items():
        resolved[product_id] = Availability(
            productId=product_id,
            quantity=record.quantity,
            supplierId=record.supplierId,
            supplierName=record.supplierName,
            source="stock",
        )

    # Inventory overrides stock outright, supplier attribution included.
    for product_id, record in select_inventory(inventory, supplier_id).items():
        resolved[product_id] = Availability(
            productId=product_id,
            price=record.costPrice,
            quantity=record.availableQty,
            supplierId=record.supplierId,
            supplierName=record.supplierName,
            source="inventory",
        )

    return resolved


def resolve_price(product: Product, availability: Optional[Availability]) -> Tuple[float, str]:
    """
    Returns (price, source) for a product.

    A zero inventory costPrice is treated as "no price supplied" so the catalog
    fallback still applies.
    """
    if availability is not None and availability.price is not None and availability.price > 0:
        return availability.price, "inventory"
    if product.tradePrice is not None and product.tradePrice > 0:
        return product.tradePrice, "tradePrice"
    if product.mrp is not None and product.mrp > 0:
        return product.mrp, "mrp"
    return 0.0, "none"
