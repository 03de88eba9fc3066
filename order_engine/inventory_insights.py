"""
inventory_insights.py — Supplier Inventory KPIs

Aggregates for the supplier inventory dashboard: distinct SKUs, units on hand,
low-stock count and estimated stock value, plus the low-stock list.
"""

from typing import Iterable, List, Optional

from .models import InventoryRecord, InventorySummary

DEFAULT_THRESHOLD = 10


def _threshold(record: InventoryRecord) -> int:
    return record.threshold if record.threshold is not None else DEFAULT_THRESHOLD


def is_low_stock(record: InventoryRecord) -> bool:
    return record.availableQty < _threshold(record)


def summarize_inventory(records: Iterable[InventoryRecord]) -> InventorySummary:
    skus = set()
    summary = InventorySummary()
    for record in records:
        skus.add(record.productId)
        summary.totalUnits += record.availableQty
        summary.estimatedValue += record.costPrice * record.availableQty
        if is_low_stock(record):
            summary.lowStockCount += 1
    summary.totalSkus = len(skus)
    summary.estimatedValue = round(summary.estimatedValue, 2)
    return summary


def low_stock(records: Iterable[InventoryRecord], limit: Optional[int] = None) -> List[InventoryRecord]:
    """Low-stock records, emptiest first."""
    flagged = sorted((r for r in records if is_low_stock(r)), key=lambda r: r.availableQty)
    return flagged[:limit] if limit else flagged
