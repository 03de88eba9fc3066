import asyncio
import copy
import os
import tempfile
from typing import Optional

import httpx
import pytest

os.environ.setdefault("ORDER_ENGINE_LOG_FILE", os.path.join(tempfile.gettempdir(), "order_engine_test.log"))

from order_engine.clients import ApiContext  # noqa: E402
from order_engine.session import OrderSession  # noqa: E402

PRODUCTS = {"products": [
    {"_id": "p1", "name": "Amoxicillin 500mg", "brand": "Novamox", "unit": "strip",
     "category": "Antibiotic", "mrp": 60, "tradePrice": 40, "images": ["amox.png"]},
    {"_id": "p2", "name": "Paracetamol 650mg", "brand": "Dolo", "unit": "strip", "mrp": 30},
    {"_id": "p3", "name": "Surgical Gloves", "unit": "box"},
]}

INVENTORY = {"items": [
    {"_id": "i1", "product": {"_id": "p1", "name": "Amoxicillin 500mg"},
     "supplier": {"_id": "s1", "name": "MediSupply"}, "availableQty": 20, "costPrice": 50, "threshold": 25},
    {"_id": "i2", "productId": "p1", "supplier": "s2", "availableQty": 99, "costPrice": 45},
]}

STOCK = [
    {"_id": "st1", "product": "p1", "supplier": "s1", "quantity": 10},
    {"_id": "st2", "product": {"_id": "p2"}, "supplier": {"_id": "s2", "email": "sales@s2.test"}, "quantity": 5},
]


class FakeOrderApi:
    """In-memory stand-in for OrderApiClient."""

    def __init__(self, products=PRODUCTS, inventory=INVENTORY, stock=STOCK,
                 context: ApiContext = ApiContext.MR):
        self.context = context
        self.bodies = {"products": products, "inventory": inventory, "stock": stock}
        self.fail = set()
        self.calls = {"products": 0, "inventory": 0, "stock": 0}
        self.orders = []
        self.order_error: Optional[Exception] = None
        self.order_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def _serve(self, name):
        self.calls[name] += 1
        if name in self.fail:
            raise httpx.ConnectError(f"{name} unreachable")
        return copy.deepcopy(self.bodies[name])

    async def fetch_products(self):
        return await self._serve("products")

    async def fetch_inventory(self, supplier_id=None, low_stock=False, limit=None):
        return await self._serve("inventory")

    async def fetch_stock(self):
        return await self._serve("stock")

    async def create_order(self, order):
        self.orders.append(order)
        if self.order_gate is not None:
            await self.order_gate.wait()
        if self.order_error is not None:
            raise self.order_error
        return {"_id": f"ord-{len(self.orders)}", "status": "pending"}

    async def aclose(self):
        self.closed = True


@pytest.fixture
def api():
    return FakeOrderApi()


@pytest.fixture
async def session(api):
    session = OrderSession(api, customer_id="h1", session_id="test")
    await session.refresh()
    return session
