import asyncio

import httpx

from order_engine.clients import ApiContext
from order_engine.session import OrderSession

from conftest import FakeOrderApi


async def test_refresh_builds_catalog_and_zero_fills_cart(session, api):
    assert [s.id for s in session.catalog] == ["p1", "p2", "p3"]
    assert session.stale is False
    assert api.calls == {"products": 1, "inventory": 1, "stock": 1}
    assert {pid: session.cart.quantity(pid) for pid in session.catalog_index} == {"p1": 0, "p2": 0, "p3": 0}


async def test_failed_source_degrades_to_empty():
    api = FakeOrderApi()
    api.fail.add("inventory")
    session = OrderSession(api, customer_id="h1")

    assert await session.refresh() is True

    catalog = session.catalog_index
    assert session.inventory == []
    assert len(catalog) == 3
    assert catalog["p1"].availableStock == 10
    assert catalog["p3"].availableStock is None


async def test_stale_refresh_results_are_discarded():
    slow = asyncio.Event()

    class SlowFirstApi(FakeOrderApi):
        async def fetch_products(self):
            body = await super().fetch_products()
            if self.calls["products"] == 1:
                await slow.wait()
                return {"products": [{"_id": "old", "name": "Outdated"}]}
            return body

    session = OrderSession(SlowFirstApi(), customer_id="h1")
    first = asyncio.ensure_future(session.refresh())
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert await session.refresh() is True
    slow.set()
    assert await first is False
    assert [s.id for s in session.catalog] == ["p1", "p2", "p3"]


async def test_cart_survives_refresh_and_sees_new_prices(session, api):
    session.cart.set_quantity("p1", 2)
    api.bodies["inventory"] = {"items": [{"productId": "p1", "supplier": "s1", "availableQty": 3, "costPrice": 70}]}

    await session.refresh()

    assert session.cart.quantity("p1") == 2
    assert session.cart.subtotal() == 140


async def test_supplier_selection_rescopes_availability(session):
    session.select_supplier("s2")

    assert session.stale is True
    assert session.catalog_index["p1"].displayPrice == 45
    assert session.catalog_index["p1"].availableStock == 99
    assert session.catalog_index["p2"].supplierName == "sales@s2.test"


async def test_hospital_orders_target_the_supplier():
    session = OrderSession(FakeOrderApi(context=ApiContext.HOSPITAL), customer_id="h1")
    assert session.target_id is None
    session.select_supplier("s1")
    assert session.target_id == "s1"


async def test_order_request_from_active_lines(session):
    session.cart.set_quantity("p1", 2)
    session.cart.set_quantity("p2", 1)

    order = session.build_order_request(placed_by="mr-7", source="MR")

    assert order.customer == "h1"
    assert [(i.productId, i.quantity, i.price) for i in order.items] == [("p1", 2, 50), ("p2", 1, 30)]
    assert order.totalPrice == 130
    assert order.placedBy == "mr-7"


async def test_unexpected_fetch_errors_degrade_only_failing_sources():
    class BrokenApi(FakeOrderApi):
        async def fetch_stock(self):
            raise httpx.InvalidURL("no host")

        async def fetch_inventory(self, supplier_id=None, low_stock=False, limit=None):
            raise RuntimeError("decoder blew up")

    session = OrderSession(BrokenApi(), customer_id="h1")

    assert await session.refresh() is True

    assert session.inventory == [] and session.stock == []
    assert [s.id for s in session.catalog] == ["p1", "p2", "p3"]
    assert all(s.availableStock is None for s in session.catalog)
    assert session.stale is False


async def test_listeners_hear_applied_changes_only(session):
    heard = []
    session.subscribe(heard.append)

    session.select_customer("h1")
    session.select_customer("h2")
    session.select_supplier("s2")
    await session.refresh()

    assert heard == ["customer", "supplier", "refresh"]


async def test_ensure_fresh_waits_for_refresh_in_flight(session, api):
    session.mark_stale()
    in_flight = asyncio.ensure_future(session.refresh())
    await asyncio.sleep(0)

    await session.ensure_fresh()

    assert await in_flight is True
    assert session.stale is False
    assert api.calls["products"] == 2
