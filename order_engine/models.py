"""
models.py — Data Models for Order Composition

This module defines the data structures shared by the ordering engine.
It uses Pydantic models so that every record crossing a module boundary is typed
and validated.

Models:
    - Product, InventoryRecord, StockRecord: normalized source records.
    - Availability: the one price/quantity triple chosen per product.
    - SellableProduct: catalog entry joined with its resolved availability.
    - CartLine: one active cart entry, priced at read time.
    - OrderItem, OrderRequest: the order-creation payload sent to the Order API.
    - Violation, ValidationResult: declared outcomes of the stock check.
    - InventorySummary: supplier inventory KPIs.
    - NewSessionRequest, SelectionUpdate, QuantityUpdate: API request payloads.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Product(BaseModel):
    """
    Represents a catalog entry as published by the catalog service.

    Attributes:
        id (str): Stable, unique product identity.
        name (str): Display name.
        brand (str): Brand name, empty when unknown.
        category (str): Category, empty when unknown.
        unit (str): Pack unit (e.g. 'strip', 'vial'), empty when unknown.
        mrp (float | None): List price.
        tradePrice (float | None): Wholesale price.
        images (List[str]): Image references, possibly empty.
    """
    id: str
    name: str = "Unnamed product"
    brand: str = ""
    category: str = ""
    unit: str = ""
    mrp: Optional[float] = None
    tradePrice: Optional[float] = None
    images: List[str] = Field(default_factory=list)


class InventoryRecord(BaseModel):
    """
    A supplier's stocked quantity and cost price for one product.
    """
    id: Optional[str] = None
    productId: str
    productName: Optional[str] = None
    supplierId: Optional[str] = None
    supplierName: Optional[str] = None
    availableQty: int = Field(0, ge=0)
    costPrice: float = Field(0.0, ge=0)
    threshold: Optional[int] = None
    batchNo: Optional[str] = None


class StockRecord(BaseModel):
    """
    Legacy supplier-held quantity for one product. Carries no price.
    """
    id: Optional[str] = None
    productId: str
    supplierId: Optional[str] = None
    supplierName: Optional[str] = None
    quantity: int = Field(0, ge=0)
    threshold: Optional[int] = None


class Availability(BaseModel):
    """
    The authoritative availability chosen for one product.

    `price` is only set when it came from an inventory record; a stock record
    supplies quantity alone and leaves pricing to the catalog.
    """
    productId: str
    price: Optional[float] = None
    quantity: Optional[int] = None
    supplierId: Optional[str] = None
    supplierName: Optional[str] = None
    source: Literal["inventory", "stock"]


class SellableProduct(BaseModel):
    """
    Derived view of a product joined with its resolved availability.

    Attributes:
        displayPrice (float): Resolved unit price; 0 means no price could be resolved.
        availableStock (int | None): Resolved quantity, None when nothing is on record.
        priceSource (str): 'inventory', 'tradePrice', 'mrp' or 'none'.
    """
    id: str
    name: str
    brand: str = ""
    category: str = ""
    unit: str = ""
    image: Optional[str] = None
    displayPrice: float = 0.0
    availableStock: Optional[int] = None
    supplierId: Optional[str] = None
    supplierName: Optional[str] = None
    priceSource: Literal["inventory", "tradePrice", "mrp", "none"] = "none"

    @property
    def orderable(self) -> bool:
        return self.displayPrice > 0


class CartLine(BaseModel):
    """
    An active cart entry annotated with the product's current name and price.
    """
    productId: str
    name: str
    quantity: int = Field(..., ge=0)
    price: float

    @property
    def lineTotal(self) -> float:
        return self.quantity * self.price


class OrderItem(BaseModel):
    """
    Represents a single product line in an order request.

    Attributes:
        productId (str): The product identity.
        quantity (int): Ordered quantity. Must be greater than zero.
        price (float): Unit price at submission time.
    """
    productId: str
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)


class OrderRequest(BaseModel):
    """
    Represents the order-creation payload sent to the Order API.

    Attributes:
        customer (str): The hospital (or supplier, for purchase orders) the order is placed for.
        supplier (str | None): Supplier the order is addressed to, when one was selected.
        items (List[OrderItem]): Non-zero cart lines.
        totalPrice (float): Sum of quantity × price over all items.
        placedBy (str | None): Acting user, when someone orders on a customer's behalf.
        source (str | None): Order origin marker, e.g. 'PO'.
        notes (str | None): Free-text remark.
    """
    customer: str
    items: List[OrderItem]
    totalPrice: float
    supplier: Optional[str] = None
    placedBy: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None


class ViolationKind(str, Enum):
    INSUFFICIENT_STOCK = "insufficient_stock"
    UNPRICED_PRODUCT = "unpriced_product"
    EMPTY_CART = "empty_cart"
    MISSING_SUPPLIER = "missing_supplier"


class Violation(BaseModel):
    """
    One reason the cart cannot be submitted.

    Per-line violations carry the product and both quantities; `available` is
    None when no availability record exists for the product.
    """
    kind: ViolationKind
    message: str
    productId: Optional[str] = None
    productName: Optional[str] = None
    requested: Optional[int] = None
    available: Optional[int] = None


class ValidationResult(BaseModel):
    violations: List[Violation] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def of_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind == kind]


class InventorySummary(BaseModel):
    """
    KPIs shown on the supplier inventory dashboard.
    """
    totalSkus: int = 0
    totalUnits: int = 0
    lowStockCount: int = 0
    estimatedValue: float = 0.0


class NewSessionRequest(BaseModel):
    """
    Opens an order session for one portal user.

    Attributes:
        context (str): Portal context: 'hospital', 'mr', 'supplier' or 'admin'.
        customerId (str | None): Customer the order is for (the hospital itself in hospital context).
        supplierId (str | None): Supplier to scope availability to.
        placedBy (str | None): Acting user recorded on submitted orders.
        source (str | None): Order origin marker, e.g. 'PO'.
    """
    context: str = "mr"
    customerId: Optional[str] = None
    supplierId: Optional[str] = None
    placedBy: Optional[str] = None
    source: Optional[str] = None


class SelectionUpdate(BaseModel):
    customerId: Optional[str] = None
    supplierId: Optional[str] = None


class QuantityUpdate(BaseModel):
    # Any number; the cart floors it to a non-negative integer.
    quantity: float
