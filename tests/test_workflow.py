import asyncio

import pytest

from order_engine.clients import GENERIC_SUBMISSION_ERROR, SubmissionFailed
from order_engine.models import ViolationKind
from order_engine.session import OrderSession
from order_engine.workflow import OrderSubmitter, SubmissionState

from conftest import INVENTORY, PRODUCTS, STOCK, FakeOrderApi


def three_line_api():
    products = {"products": PRODUCTS["products"] + [{"_id": "p4", "name": "ORS Sachet", "mrp": 20}]}
    stock = STOCK + [{"product": "p4", "supplier": "s1", "quantity": 50}]
    return FakeOrderApi(products=products, inventory=INVENTORY, stock=stock)


@pytest.fixture
async def ready():
    api = three_line_api()
    session = OrderSession(api, customer_id="h1", session_id="wf")
    await session.refresh()
    session.cart.set_quantity("p1", 2)
    session.cart.set_quantity("p2", 1)
    session.cart.set_quantity("p4", 5)
    return api, session, OrderSubmitter(session, placed_by="mr-7")


async def test_place_then_confirm_succeeds_and_clears_cart(ready):
    api, session, submitter = ready

    result = await submitter.place_order()
    assert result.ok
    assert submitter.state == SubmissionState.CONFIRMING
    assert submitter.pending.totalPrice == 230

    assert await submitter.confirm() == SubmissionState.SUCCEEDED
    assert session.cart.lines() == []
    assert session.stale is True
    assert submitter.last_order["_id"] == "ord-1"
    assert api.orders[0].placedBy == "mr-7"


async def test_failed_submission_preserves_cart(ready):
    api, session, submitter = ready
    api.order_error = SubmissionFailed("Insufficient stock for p1", status_code=409)
    before = session.cart.lines()

    await submitter.place_order()
    assert await submitter.confirm() == SubmissionState.FAILED

    assert session.cart.lines() == before
    assert len(before) == 3
    assert submitter.error == "Insufficient stock for p1"
    assert session.stale is True


async def test_unexpected_error_maps_to_failed_with_generic_message(ready):
    api, session, submitter = ready
    api.order_error = RuntimeError("boom")

    await submitter.place_order()

    assert await submitter.confirm() == SubmissionState.FAILED
    assert submitter.error == GENERIC_SUBMISSION_ERROR
    assert session.cart.line_count() == 3


async def test_repeated_triggers_while_submitting_send_one_order(ready):
    api, session, submitter = ready
    api.order_gate = asyncio.Event()

    await submitter.place_order()
    in_flight = asyncio.ensure_future(submitter.confirm())
    await asyncio.sleep(0)
    assert submitter.state == SubmissionState.SUBMITTING

    repeats = await asyncio.gather(*[submitter.confirm() for _ in range(5)],
                                   *[submitter.place_order() for _ in range(5)])
    api.order_gate.set()

    assert await in_flight == SubmissionState.SUCCEEDED
    assert repeats == [None] * 10
    assert len(api.orders) == 1
    assert submitter.submissions == 1


async def test_violations_keep_idle(ready):
    api, session, submitter = ready
    session.cart.set_quantity("p1", 21)
    session.cart.set_quantity("p2", 6)

    result = await submitter.place_order()

    assert submitter.state == SubmissionState.IDLE
    assert len(result.of_kind(ViolationKind.INSUFFICIENT_STOCK)) == 2
    assert api.orders == []


async def test_missing_customer_blocks_confirmation(ready):
    api, session, submitter = ready
    session.select_customer(None)

    result = await submitter.place_order()

    assert [v.kind for v in result.violations] == [ViolationKind.MISSING_SUPPLIER]
    assert submitter.state == SubmissionState.IDLE


async def test_cancel_returns_to_idle_without_side_effects(ready):
    api, session, submitter = ready
    await submitter.place_order()

    assert submitter.cancel() is True
    assert submitter.state == SubmissionState.IDLE
    assert session.cart.line_count() == 3
    assert api.orders == []
    assert await submitter.confirm() is None


async def test_retry_after_failure_revalidates_against_fresh_availability(ready):
    api, session, submitter = ready
    api.order_error = SubmissionFailed("Stock changed")
    await submitter.place_order()
    await submitter.confirm()

    api.order_error = None
    api.bodies["inventory"] = {"items": [{"productId": "p1", "supplier": "s1", "availableQty": 1, "costPrice": 50}]}
    result = await submitter.place_order()

    assert api.calls["products"] == 2
    assert submitter.state == SubmissionState.IDLE
    [violation] = result.violations
    assert (violation.productId, violation.requested, violation.available) == ("p1", 2, 1)


async def test_cart_edit_returns_terminal_state_to_idle(ready):
    api, session, submitter = ready
    api.order_error = SubmissionFailed("nope")
    await submitter.place_order()
    await submitter.confirm()
    assert submitter.state == SubmissionState.FAILED

    session.cart.add_one("p2")

    assert submitter.state == SubmissionState.IDLE


async def test_cart_edit_during_confirmation_drops_summary(ready):
    api, session, submitter = ready
    await submitter.place_order()

    session.cart.add_one("p2")

    assert submitter.state == SubmissionState.IDLE
    assert submitter.pending is None


async def test_dismiss_after_success(ready):
    api, session, submitter = ready
    await submitter.place_order()
    await submitter.confirm()

    submitter.dismiss()

    assert submitter.state == SubmissionState.IDLE


async def test_detached_view_is_not_notified(ready):
    api, session, submitter = ready
    seen = []
    submitter.subscribe(seen.append)
    api.order_gate = asyncio.Event()
    await submitter.place_order()
    in_flight = asyncio.ensure_future(submitter.confirm())
    await asyncio.sleep(0)

    submitter.detach()
    api.order_gate.set()

    assert await in_flight == SubmissionState.SUCCEEDED
    assert seen == [SubmissionState.CONFIRMING, SubmissionState.SUBMITTING]
    assert session.cart.lines() == []


async def test_confirm_sends_exactly_the_confirmed_order(ready):
    api, session, submitter = ready
    await submitter.place_order()
    confirmed = submitter.pending

    await submitter.confirm()

    assert api.orders == [confirmed]
    assert api.orders[0] is confirmed


@pytest.mark.parametrize("change", [
    lambda session: session.select_customer(None),
    lambda session: session.select_customer("h2"),
    lambda session: session.select_supplier("s2"),
])
async def test_selection_change_during_confirmation_drops_summary(ready, change):
    api, session, submitter = ready
    await submitter.place_order()

    change(session)

    assert submitter.state == SubmissionState.IDLE
    assert submitter.pending is None
    assert await submitter.confirm() is None
    assert api.orders == []


async def test_unchanged_selection_keeps_summary(ready):
    api, session, submitter = ready
    await submitter.place_order()

    session.select_customer("h1")

    assert submitter.state == SubmissionState.CONFIRMING


async def test_refresh_during_confirmation_forces_revalidation(ready):
    api, session, submitter = ready
    await submitter.place_order()
    assert submitter.pending.totalPrice == 230

    api.bodies["inventory"] = {"items": [{"productId": "p1", "supplier": "s1", "availableQty": 1, "costPrice": 500}]}
    assert await session.refresh() is True

    assert submitter.state == SubmissionState.IDLE
    assert await submitter.confirm() is None
    result = await submitter.place_order()
    [violation] = result.violations
    assert (violation.productId, violation.requested, violation.available) == ("p1", 2, 1)
    assert api.orders == []


async def until(condition):
    for _ in range(100):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class GatedInventoryApi(FakeOrderApi):
    """Serves one inventory body per call, each released by its own gate."""

    def __init__(self, inventory_bodies):
        super().__init__(products=PRODUCTS, stock=STOCK)
        self.inventory_bodies = inventory_bodies
        self.gates = [asyncio.Event() for _ in inventory_bodies]

    async def fetch_inventory(self, supplier_id=None, low_stock=False, limit=None):
        call = self.calls["inventory"]
        self.calls["inventory"] += 1
        await self.gates[call].wait()
        return self.inventory_bodies[call]


async def test_place_order_validates_against_latest_refresh_only():
    outdated = {"items": [{"productId": "p1", "supplier": "s1", "availableQty": 20, "costPrice": 50}]}
    latest = {"items": [{"productId": "p1", "supplier": "s1", "availableQty": 5, "costPrice": 60}]}
    api = GatedInventoryApi([INVENTORY, outdated, latest])
    api.gates[0].set()
    session = OrderSession(api, customer_id="h1", session_id="gen")
    await session.refresh()
    session.cart.set_quantity("p1", 2)
    session.mark_stale()
    submitter = OrderSubmitter(session)

    placing = asyncio.ensure_future(submitter.place_order())
    await until(lambda: api.calls["inventory"] == 2)
    newer = asyncio.ensure_future(session.refresh())
    await until(lambda: api.calls["inventory"] == 3)

    api.gates[1].set()
    for _ in range(20):
        await asyncio.sleep(0)
    assert not placing.done()
    assert submitter.state == SubmissionState.IDLE

    api.gates[2].set()
    assert await newer is True
    result = await placing

    assert result.ok
    assert submitter.state == SubmissionState.CONFIRMING
    assert [(i.productId, i.price) for i in submitter.pending.items] == [("p1", 60)]
    assert api.calls["inventory"] == 3


async def test_overlapping_place_orders_share_one_refresh(ready):
    api, session, submitter = ready
    session.mark_stale()

    first, second = await asyncio.gather(submitter.place_order(), submitter.place_order())

    assert first.ok and second.ok
    assert api.calls["products"] == 2
    assert submitter.state == SubmissionState.CONFIRMING
