"""
session.py — Order Session

One user's ordering context: the three source collections, the merged catalog
derived from them, the cart, and the selected customer/supplier. A session is
created per order page instance and is never shared between users.

Source loading:
    - Products, inventory and stock are fetched concurrently.
    - A failing fetch degrades that one source to an empty list.
    - Only the most recently started refresh is applied; results of an older
      refresh that completes later are discarded.
    - Listeners are told when an applied refresh or a new customer/supplier
      selection changes what an order built from this session would contain.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .cart import CartStore
from .catalog import index_catalog, merge_catalog
from .clients import ApiContext
from .models import (InventoryRecord, OrderItem, OrderRequest, Product, SellableProduct,
                     StockRecord, ValidationResult)
from .normalizer import normalize_inventory, normalize_products, normalize_stock
from .validation import validate_cart

log = logging.getLogger(__name__)


class OrderSession:
    """
    Per-user ordering state.

    Args:
        client: Order API client (see clients.OrderApiClient).
        customer_id (str | None): Customer the order is placed for.
        supplier_id (str | None): Supplier whose records availability is scoped to.
        session_id (str | None): Identifier used in logs; generated when omitted.
    """

    def __init__(self, client, customer_id: Optional[str] = None,
                 supplier_id: Optional[str] = None, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex[:12]
        self.client = client
        self.customer_id = customer_id
        self.supplier_id = supplier_id
        self.products: List[Product] = []
        self.inventory: List[InventoryRecord] = []
        self.stock: List[StockRecord] = []
        self.stale = True
        self._generation = 0
        self._settled: Optional[asyncio.Event] = None
        self._listeners: List[Callable[[str], None]] = []
        self._sellables: List[SellableProduct] = []
        self._index: Dict[str, SellableProduct] = {}
        self.cart = CartStore(lambda: self._index)
        self.log_prefix = f"[Session: {self.id}]"

    @property
    def context(self) -> ApiContext:
        return getattr(self.client, "context", ApiContext.MR)

    @property
    def target_id(self) -> Optional[str]:
        """The selection an order cannot be placed without: the supplier when a hospital orders, else the customer."""
        if self.context == ApiContext.HOSPITAL:
            return self.supplier_id if self.customer_id else None
        return self.customer_id

    @property
    def catalog(self) -> List[SellableProduct]:
        return list(self._sellables)

    @property
    def catalog_index(self) -> Dict[str, SellableProduct]:
        return self._index

    def subscribe(self, listener: Callable[[str], None]) -> None:
        """Registers a callback receiving the reason ('refresh', 'customer', 'supplier') of a change."""
        self._listeners.append(listener)

    def _notify(self, reason: str) -> None:
        for listener in list(self._listeners):
            listener(reason)

    async def _load(self, source: str, request: Awaitable[Any]) -> Any:
        try:
            return await request
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, ValueError) as e:
            log.warning(f"{self.log_prefix} Fetching {source} failed ({e!r}). Degrading to empty list.")
            return None
        except Exception as e:
            log.error(f"{self.log_prefix} Unexpected error fetching {source}: {e}. Degrading to empty list.",
                      exc_info=True)
            return None

    async def refresh(self) -> bool:
        """
        Refetches all three sources concurrently and recomputes the catalog.

        Returns:
            bool: False when a newer refresh started meanwhile and these results were discarded.
        """
        self._generation += 1
        generation = self._generation
        settled = self._settled = asyncio.Event()
        log.info(f"{self.log_prefix} Refreshing sources (generation {generation}).")

        try:
            products_body, inventory_body, stock_body = await asyncio.gather(
                self._load("products", self.client.fetch_products()),
                self._load("inventory", self.client.fetch_inventory(supplier_id=self.supplier_id)),
                self._load("stock", self.client.fetch_stock()),
            )

            if generation != self._generation:
                log.info(f"{self.log_prefix} Discarding stale refresh {generation} (current: {self._generation}).")
                return False

            default_supplier = self.supplier_id if self.context == ApiContext.SUPPLIER else None
            self.set_sources(
                products=normalize_products(products_body),
                inventory=normalize_inventory(inventory_body, default_supplier_id=default_supplier),
                stock=normalize_stock(stock_body),
            )
            self.stale = False
        finally:
            settled.set()

        log.info(f"{self.log_prefix} Catalog ready: {len(self._sellables)} products, "
                 f"{len(self.inventory)} inventory records, {len(self.stock)} stock records.")
        self._notify("refresh")
        return True

    async def ensure_fresh(self) -> None:
        """
        Returns once a refresh started after the sources went stale has been applied.

        A refresh already in flight is awaited instead of being superseded, so
        concurrent callers settle on the same, latest snapshot.
        """
        while self.stale:
            settled = self._settled
            if settled is not None and not settled.is_set():
                await settled.wait()
            else:
                await self.refresh()

    def set_sources(self, products: Optional[List[Product]] = None,
                    inventory: Optional[List[InventoryRecord]] = None,
                    stock: Optional[List[StockRecord]] = None) -> None:
        """Replaces any of the source collections and recomputes the catalog."""
        if products is not None:
            self.products = products
        if inventory is not None:
            self.inventory = inventory
        if stock is not None:
            self.stock = stock
        self._recompute()

    def _recompute(self) -> None:
        self._sellables = merge_catalog(self.products, self.inventory, self.stock, self.supplier_id)
        self._index = index_catalog(self._sellables)
        self.cart.track(self._index)

    def mark_stale(self) -> None:
        self.stale = True

    def select_customer(self, customer_id: Optional[str]) -> None:
        customer_id = customer_id or None
        if customer_id == self.customer_id:
            return
        self.customer_id = customer_id
        self._notify("customer")

    def select_supplier(self, supplier_id: Optional[str]) -> None:
        """Changes the supplier scope; availability is recomputed and the sources marked stale."""
        supplier_id = supplier_id or None
        if supplier_id == self.supplier_id:
            return
        self.supplier_id = supplier_id
        self._recompute()
        self.mark_stale()
        self._notify("supplier")

    def validate(self) -> ValidationResult:
        return validate_cart(self.cart.lines(), self._index, self.target_id)

    def build_order_request(self, placed_by: Optional[str] = None, source: Optional[str] = None,
                            notes: Optional[str] = None) -> OrderRequest:
        """Serializes the active cart lines into a fresh order-creation payload."""
        lines = self.cart.lines()
        return OrderRequest(
            customer=self.customer_id or "",
            items=[OrderItem(productId=line.productId, quantity=line.quantity, price=line.price)
                   for line in lines],
            totalPrice=round(sum(line.lineTotal for line in lines), 2),
            supplier=self.supplier_id,
            placedBy=placed_by,
            source=source,
            notes=notes,
        )
