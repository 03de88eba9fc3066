"""
normalizer.py — Source Normalization

Converts raw Order API response bodies for products, inventory and stock into
flat lists of typed records. The API is inconsistent about envelopes (a bare
list, {"data": [...]}, {"items": [...]}, ...) and about references (a product
or supplier may be a bare id or an embedded object), so all of that is handled
here once, at the boundary.

Nothing in this module raises on bad input: an unrecognized envelope becomes an
empty list and an unusable record is skipped, both with a warning.
"""

import logging
import math
from typing import Any, Iterable, List, Optional

from .models import InventoryRecord, Product, StockRecord

log = logging.getLogger(__name__)

ENVELOPE_KEYS = ("data", "items", "products", "inventories", "stocks", "results")


def unwrap_or_empty(body: Any, source: str = "source") -> List[Any]:
    """
    Returns the list carried by a response body, or [] for an unknown shape.

    Args:
        body: Parsed JSON body.
        source (str): Source name used in log messages.
    """
    if body is None:
        return []
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(body.get(key), list):
                return body[key]
    shape = f"keys {sorted(map(str, body))}" if isinstance(body, dict) else type(body).__name__
    log.warning(f"[{source}] MalformedSource: unrecognized envelope ({shape}). Using empty list.")
    return []


def resolve_identity(ref: Any) -> Optional[str]:
    """Returns the identity behind a bare id or an embedded {_id|id: ...} object."""
    if isinstance(ref, dict):
        ref = ref.get("_id", ref.get("id"))
    if isinstance(ref, bool) or ref is None:
        return None
    if isinstance(ref, (int, float)):
        return str(ref)
    if isinstance(ref, str):
        return ref.strip() or None
    return None


def _display_name(ref: Any) -> Optional[str]:
    if isinstance(ref, dict):
        name = ref.get("name") or ref.get("email")
        return str(name) if name else None
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _quantity(value: Any) -> int:
    number = _number(value)
    if number is None or number < 0:
        return 0
    return int(math.floor(number))


def _price(value: Any) -> float:
    number = _number(value)
    return number if number is not None and number > 0 else 0.0


def _text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return str(value).strip()


def _first(record: dict, *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _records(rows: Iterable[Any], source: str):
    for row in rows:
        if isinstance(row, dict):
            yield row
        else:
            log.warning(f"[{source}] Skipping non-object record: {row!r}")


def normalize_products(body: Any) -> List[Product]:
    """
    Normalizes a products response into Product records.

    Records without an identity are skipped; repeated identities keep the first.
    A legacy `price` field stands in for `mrp` when the latter is absent.
    """
    products: List[Product] = []
    seen = set()
    for row in _records(unwrap_or_empty(body, "products"), "products"):
        product_id = resolve_identity(row)
        if product_id is None:
            log.warning(f"[products] Skipping record without identity: {row.get('name')!r}")
            continue
        if product_id in seen:
            log.warning(f"[products] Duplicate product {product_id}, keeping first occurrence.")
            continue
        seen.add(product_id)

        images = row.get("images")
        image_list = [img for img in images if isinstance(img, str)] if isinstance(images, list) else []
        if not image_list and isinstance(row.get("image"), str):
            image_list = [row["image"]]

        products.append(Product(
            id=product_id,
            name=_text(row.get("name")) or "Unnamed product",
            brand=_text(row.get("brand")),
            category=_text(row.get("category")),
            unit=_text(row.get("unit")),
            mrp=_number(_first(row, "mrp", "price")),
            tradePrice=_number(row.get("tradePrice")),
            images=image_list,
        ))
    return products


def normalize_inventory(body: Any, default_supplier_id: Optional[str] = None) -> List[InventoryRecord]:
    """
    Normalizes an inventory response into InventoryRecord records.

    Args:
        body: Parsed response body.
        default_supplier_id (str | None): Supplier to attribute records to when
            the listing is supplier-scoped and omits the supplier reference.
    """
    records: List[InventoryRecord] = []
    for row in _records(unwrap_or_empty(body, "inventory"), "inventory"):
        product_ref = _first(row, "product", "productId")
        product_id = resolve_identity(product_ref)
        if product_id is None:
            log.warning(f"[inventory] Skipping record {row.get('_id')!r} without product reference.")
            continue
        supplier_ref = _first(row, "supplier", "supplierId")
        records.append(InventoryRecord(
            id=resolve_identity(row),
            productId=product_id,
            productName=_display_name(product_ref),
            supplierId=resolve_identity(supplier_ref) or default_supplier_id,
            supplierName=_display_name(supplier_ref),
            availableQty=_quantity(_first(row, "availableQty", "stock")),
            costPrice=_price(_first(row, "costPrice", "price")),
            threshold=_quantity(row["threshold"]) if row.get("threshold") is not None else None,
            batchNo=_text(row.get("batchNo")) or None,
        ))
    return records


def normalize_stock(body: Any) -> List[StockRecord]:
    """Normalizes a legacy stock response into StockRecord records."""
    records: List[StockRecord] = []
    for row in _records(unwrap_or_empty(body, "stock"), "stock"):
        product_id = resolve_identity(_first(row, "product", "productId"))
        if product_id is None:
            log.warning(f"[stock] Skipping record {row.get('_id')!r} without product reference.")
            continue
        supplier_ref = _first(row, "supplier", "supplierId")
        records.append(StockRecord(
            id=resolve_identity(row),
            productId=product_id,
            supplierId=resolve_identity(supplier_ref),
            supplierName=_display_name(supplier_ref),
            quantity=_quantity(row.get("quantity")),
            threshold=_quantity(row["threshold"]) if row.get("threshold") is not None else None,
        ))
    return records
