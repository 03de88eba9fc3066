"""
validation.py — Stock Validation

Checks a cart against resolved availability right before an order is confirmed.
Every line is checked before anything is reported, so the caller gets the full
list of violations in one pass. Nothing here raises: the result is a
ValidationResult the caller must inspect.
"""

from typing import Iterable, List, Mapping, Optional

from .models import CartLine, SellableProduct, ValidationResult, Violation, ViolationKind


def _check_line(line: CartLine, sellable: Optional[SellableProduct]) -> List[Violation]:
    violations: List[Violation] = []
    name = sellable.name if sellable else line.name

    if sellable is None or sellable.availableStock is None:
        violations.append(Violation(
            kind=ViolationKind.INSUFFICIENT_STOCK,
            message=f"{name}: requested {line.quantity}, no stock on record",
            productId=line.productId,
            productName=name,
            requested=line.quantity,
            available=None,
        ))
    elif line.quantity > sellable.availableStock:
        violations.append(Violation(
            kind=ViolationKind.INSUFFICIENT_STOCK,
            message=f"{name}: requested {line.quantity}, only {sellable.availableStock} available",
            productId=line.productId,
            productName=name,
            requested=line.quantity,
            available=sellable.availableStock,
        ))

    if sellable is not None and not sellable.orderable:
        violations.append(Violation(
            kind=ViolationKind.UNPRICED_PRODUCT,
            message=f"{name}: price unavailable, product cannot be ordered",
            productId=line.productId,
            productName=name,
            requested=line.quantity,
            available=sellable.availableStock,
        ))
    return violations


def validate_cart(lines: Iterable[CartLine],
                  catalog: Mapping[str, SellableProduct],
                  target_id: Optional[str]) -> ValidationResult:
    """
    Validates active cart lines against the catalog's resolved availability.

    Args:
        lines: Active cart lines (quantity > 0).
        catalog: SellableProducts keyed by id, resolved for the selected supplier
            when the order targets one.
        target_id (str | None): Selected supplier/customer. Required.

    Returns:
        ValidationResult: Empty when the cart may be submitted.
    """
    result = ValidationResult()
    active = [line for line in lines if line.quantity > 0]

    if not target_id:
        result.violations.append(Violation(
            kind=ViolationKind.MISSING_SUPPLIER,
            message="Please select a supplier or customer before placing the order.",
        ))
    if not active:
        result.violations.append(Violation(
            kind=ViolationKind.EMPTY_CART,
            message="Please select at least one item.",
        ))

    for line in active:
        result.violations.extend(_check_line(line, catalog.get(line.productId)))
    return result
