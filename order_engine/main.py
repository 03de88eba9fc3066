"""
main.py — FastAPI Entry Point for the Order Engine

This module provides the REST API the portal's order views talk to. Each view
instance opens an order session; the session holds the merged catalog and the
cart, and walks the confirm-then-submit protocol against the remote Order API.

Responsibilities:
    • Open and close per-user order sessions
    • Serve the merged, searchable catalog
    • Apply cart edits and report derived totals
    • Run validation, confirmation and submission
    • Provide supplier inventory KPIs and system health information
"""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .catalog import filter_products, paginate
from .clients import ApiContext, OrderApiClient
from .inventory_insights import low_stock, summarize_inventory
from .logging_config import get_logger, setup_logging
from .models import NewSessionRequest, QuantityUpdate, SelectionUpdate
from .session import OrderSession
from .workflow import OrderSubmitter, SubmissionState

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Pharma Supply Order Engine")


@dataclass
class SessionEntry:
    session: OrderSession
    submitter: OrderSubmitter


app.state.sessions = {}


def get_client_factory() -> Callable[..., OrderApiClient]:
    """Dependency returning the Order API client factory (overridden in tests)."""
    return OrderApiClient


def get_entry(session_id: str) -> SessionEntry:
    entry = app.state.sessions.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Order session not found.")
    return entry


def session_view(entry: SessionEntry) -> dict:
    session = entry.session
    return {
        "sessionId": session.id,
        "context": session.context.value,
        "customerId": session.customer_id,
        "supplierId": session.supplier_id,
        "stale": session.stale,
        "productCount": len(session.catalog),
        "state": entry.submitter.state.value,
    }


def cart_view(session: OrderSession) -> dict:
    lines = session.cart.lines()
    return {
        "lines": [dict(line.model_dump(), lineTotal=line.lineTotal) for line in lines],
        "lineCount": len(lines),
        "totalQuantity": sum(line.quantity for line in lines),
        "subtotal": round(sum(line.lineTotal for line in lines), 2),
    }


def order_view(submitter: OrderSubmitter) -> dict:
    return {
        "state": submitter.state.value,
        "pending": submitter.pending.model_dump(exclude_none=True) if submitter.pending else None,
        "error": submitter.error,
        "order": submitter.last_order,
    }


@app.on_event("startup")
def on_startup():
    log.info("Order Engine starting...")


@app.on_event("shutdown")
async def on_shutdown():
    """Closes the Order API clients of all open sessions."""
    for entry in list(app.state.sessions.values()):
        await entry.session.client.aclose()
    app.state.sessions.clear()


# API Endpoints: Order sessions
@app.post("/v1/sessions", status_code=201)
async def open_session(request: NewSessionRequest,
                       client_factory: Callable[..., OrderApiClient] = Depends(get_client_factory)):
    """
    Opens an order session and loads its catalog.

    Returns:
        dict: Session overview including sessionId and product count.

    Raises:
        HTTPException(400): Unknown context, or a hospital session without customerId.
    """
    try:
        context = ApiContext(request.context)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown context '{request.context}'.")
    if context == ApiContext.HOSPITAL and not request.customerId:
        raise HTTPException(status_code=400, detail="Hospital sessions require customerId.")

    session = OrderSession(client_factory(context=context),
                           customer_id=request.customerId, supplier_id=request.supplierId)
    submitter = OrderSubmitter(session, placed_by=request.placedBy, source=request.source)
    entry = SessionEntry(session=session, submitter=submitter)
    app.state.sessions[session.id] = entry

    log.info(f"{session.log_prefix} Session opened ({context.value}).")
    await session.refresh()
    return session_view(entry)


@app.get("/v1/sessions/{session_id}")
def get_session(entry: SessionEntry = Depends(get_entry)):
    return session_view(entry)


@app.delete("/v1/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, entry: SessionEntry = Depends(get_entry)):
    """
    Closes a session when its view goes away.

    An order already being submitted is not cancelled; its client is closed
    once the submission completes.
    """
    entry.submitter.detach()
    app.state.sessions.pop(session_id, None)
    if entry.submitter.state == SubmissionState.SUBMITTING:
        log.info(f"{entry.session.log_prefix} Closed while submitting; submission continues.")
    else:
        await entry.session.client.aclose()


@app.post("/v1/sessions/{session_id}/refresh")
async def refresh_session(entry: SessionEntry = Depends(get_entry)):
    applied = await entry.session.refresh()
    return dict(session_view(entry), applied=applied)


@app.put("/v1/sessions/{session_id}/selection")
def update_selection(update: SelectionUpdate, entry: SessionEntry = Depends(get_entry)):
    if "customerId" in update.model_fields_set:
        entry.session.select_customer(update.customerId)
    if "supplierId" in update.model_fields_set:
        entry.session.select_supplier(update.supplierId)
    return session_view(entry)


@app.get("/v1/sessions/{session_id}/catalog")
def get_catalog(q: str = "", page: int = 1, perPage: int = 12, entry: SessionEntry = Depends(get_entry)):
    """
    Returns one page of the merged catalog, filtered by name, brand, unit or category.
    """
    matches = filter_products(entry.session.catalog, q)
    items, page, total_pages = paginate(matches, page, perPage)
    return {
        "items": [dict(item.model_dump(), orderable=item.orderable) for item in items],
        "page": page,
        "totalPages": total_pages,
        "total": len(matches),
    }


# API Endpoints: Cart
@app.get("/v1/sessions/{session_id}/cart")
def get_cart(entry: SessionEntry = Depends(get_entry)):
    return cart_view(entry.session)


@app.put("/v1/sessions/{session_id}/cart/{product_id}")
def set_cart_quantity(product_id: str, update: QuantityUpdate, entry: SessionEntry = Depends(get_entry)):
    entry.session.cart.set_quantity(product_id, update.quantity)
    return cart_view(entry.session)


@app.post("/v1/sessions/{session_id}/cart/{product_id}/increment")
def increment_cart(product_id: str, entry: SessionEntry = Depends(get_entry)):
    entry.session.cart.add_one(product_id)
    return cart_view(entry.session)


@app.post("/v1/sessions/{session_id}/cart/{product_id}/decrement")
def decrement_cart(product_id: str, entry: SessionEntry = Depends(get_entry)):
    entry.session.cart.remove_one(product_id)
    return cart_view(entry.session)


@app.delete("/v1/sessions/{session_id}/cart/{product_id}")
def remove_from_cart(product_id: str, entry: SessionEntry = Depends(get_entry)):
    entry.session.cart.remove(product_id)
    return cart_view(entry.session)


@app.delete("/v1/sessions/{session_id}/cart")
def reset_cart(entry: SessionEntry = Depends(get_entry)):
    entry.session.cart.clear()
    return cart_view(entry.session)


# API Endpoints: Order placement
@app.get("/v1/sessions/{session_id}/order")
def get_order(entry: SessionEntry = Depends(get_entry)):
    return order_view(entry.submitter)


@app.post("/v1/sessions/{session_id}/order")
async def place_order(entry: SessionEntry = Depends(get_entry)):
    """
    Validates the cart and opens the confirmation step.

    Returns:
        dict: The order summary awaiting confirmation.

    Raises:
        HTTPException(409): An order is already being submitted.
        422 response: The cart failed validation; every violation is listed.
    """
    result = await entry.submitter.place_order()
    if result is None:
        raise HTTPException(status_code=409, detail="Order is already being submitted.")
    if not result.ok:
        return JSONResponse(
            status_code=422,
            content={"violations": [v.model_dump(mode="json") for v in result.violations]},
        )
    return order_view(entry.submitter)


@app.post("/v1/sessions/{session_id}/order/cancel")
def cancel_order(entry: SessionEntry = Depends(get_entry)):
    if not entry.submitter.cancel():
        raise HTTPException(status_code=409, detail="No order awaiting confirmation.")
    return order_view(entry.submitter)


@app.post("/v1/sessions/{session_id}/order/confirm")
async def confirm_order(session_id: str, entry: SessionEntry = Depends(get_entry)):
    """
    Submits the confirmed order to the Order API.

    Returns:
        201 response: Order accepted; the cart has been cleared.

    Raises:
        HTTPException(409): Nothing to confirm (including a repeated confirm while submitting).
        HTTPException(502): The Order API rejected the order or was unreachable.
    """
    state = await entry.submitter.confirm()
    if session_id not in app.state.sessions:
        await entry.session.client.aclose()
    if state is None:
        raise HTTPException(status_code=409, detail="No order awaiting confirmation.")
    if state == SubmissionState.FAILED:
        raise HTTPException(status_code=502, detail={"message": entry.submitter.error})
    return JSONResponse(status_code=201, content=order_view(entry.submitter))


@app.post("/v1/sessions/{session_id}/order/dismiss")
def dismiss_order(entry: SessionEntry = Depends(get_entry)):
    entry.submitter.dismiss()
    return order_view(entry.submitter)


# Supplier dashboard
@app.get("/v1/sessions/{session_id}/inventory/summary")
def inventory_summary(limit: Optional[int] = 8, entry: SessionEntry = Depends(get_entry)):
    records = entry.session.inventory
    return {
        "summary": summarize_inventory(records).model_dump(),
        "lowStock": [r.model_dump() for r in low_stock(records, limit)],
    }


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok", "sessions": len(app.state.sessions)}
