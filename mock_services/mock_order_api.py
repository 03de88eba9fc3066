"""
mock_order_api.py — Mock Implementation of the Order API (REST API)

This module provides a simulated Order API for exercising the order engine
locally. It exposes a simple FastAPI application that mimics the portal
backend's listing and order-creation behavior, including its inconsistent
response envelopes.

Simulation Scenarios:
    • Products served as {"products": [...]}, inventory as {"items": [...]},
      legacy stock as a bare list
    • Successful order creation (HTTP 201)
    • Stock consumed by another actor: product id contains "RACE" (HTTP 409)
    • Backend outage: product id contains "DOWN" (HTTP 503)
    • Quantity above the mock's own stock figures (HTTP 409)

Endpoints:
    GET  /api/products
    GET  /api/inventory
    GET  /api/suppliers/{supplier_id}/inventories
    GET  /api/stocks
    POST /api/orders, /api/hospital/orders

Port:
    Default: 8000 (HTTP)
"""

import logging
import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Order API")
logging.basicConfig(level=logging.INFO)

SUPPLIERS = {
    "sup-1": {"_id": "sup-1", "name": "MediSupply Co", "email": "orders@medisupply.test"},
    "sup-2": {"_id": "sup-2", "name": "PharmaDirect", "email": "sales@pharmadirect.test"},
}

PRODUCTS = [
    {"_id": "p-amox", "name": "Amoxicillin 500mg", "brand": "Novamox", "category": "Antibiotic",
     "unit": "strip", "mrp": 120, "tradePrice": 95, "images": []},
    {"_id": "p-para", "name": "Paracetamol 650mg", "brand": "Dolo", "category": "Analgesic",
     "unit": "strip", "mrp": 30, "images": []},
    {"_id": "p-insu", "name": "Insulin Glargine", "brand": "Lantus", "category": "Antidiabetic",
     "unit": "vial", "mrp": 780, "tradePrice": 690, "images": []},
    {"_id": "p-RACE-ors", "name": "ORS Sachet", "brand": "Electral", "category": "Rehydration",
     "unit": "sachet", "mrp": 22, "images": []},
    {"_id": "p-glove", "name": "Surgical Gloves", "brand": "", "category": "Consumable",
     "unit": "box", "images": []},
]

INVENTORIES = [
    {"_id": "inv-1", "product": PRODUCTS[0], "supplier": SUPPLIERS["sup-1"],
     "availableQty": 40, "costPrice": 88, "threshold": 10, "batchNo": "AMX-2291"},
    {"_id": "inv-2", "product": PRODUCTS[0], "supplier": SUPPLIERS["sup-2"],
     "availableQty": 15, "costPrice": 91, "threshold": 10, "batchNo": "AMX-2304"},
    {"_id": "inv-3", "productId": "p-insu", "supplier": SUPPLIERS["sup-1"],
     "availableQty": 6, "costPrice": 650, "threshold": 8},
    {"_id": "inv-4", "productId": "p-RACE-ors", "supplier": SUPPLIERS["sup-2"],
     "availableQty": 200, "costPrice": 18},
]

STOCKS = [
    {"_id": "st-1", "product": "p-para", "supplier": SUPPLIERS["sup-1"], "quantity": 120, "threshold": 20},
    {"_id": "st-2", "product": {"_id": "p-para", "name": "Paracetamol 650mg"}, "supplier": "sup-2",
     "quantity": 80, "threshold": 20},
    {"_id": "st-3", "product": "p-amox", "supplier": "sup-1", "quantity": 999},
]


class OrderItemIn(BaseModel):
    productId: str
    quantity: int
    price: float


class OrderIn(BaseModel):
    """
    Represents an order-creation request.

    Attributes:
        customer (str): Customer (hospital) id.
        items (List[OrderItemIn]): Ordered lines.
        totalPrice (float): Client-computed total.
    """
    customer: str
    items: List[OrderItemIn]
    totalPrice: float
    supplier: Optional[str] = None
    placedBy: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None


def _available(product_id: str) -> int:
    quantities = [i["availableQty"] for i in INVENTORIES
                  if (i.get("productId") or i["product"]["_id"]) == product_id]
    quantities += [s["quantity"] for s in STOCKS
                   if (s["product"] if isinstance(s["product"], str) else s["product"]["_id"]) == product_id]
    return max(quantities, default=0)


@app.get("/api/products")
def list_products():
    return {"products": PRODUCTS}


@app.get("/api/inventory")
def list_inventory(lowStock: bool = False, limit: Optional[int] = None):
    items = [i for i in INVENTORIES if not lowStock or i["availableQty"] < i.get("threshold", 10)]
    return {"items": items[:limit] if limit else items}


@app.get("/api/suppliers/{supplier_id}/inventories")
def list_supplier_inventory(supplier_id: str, lowStock: bool = False, limit: Optional[int] = None):
    items = [{k: v for k, v in i.items() if k != "supplier"} for i in INVENTORIES
             if i["supplier"]["_id"] == supplier_id]
    if lowStock:
        items = [i for i in items if i["availableQty"] < i.get("threshold", 10)]
    return {"data": items[:limit] if limit else items}


@app.get("/api/stocks")
def list_stocks():
    return STOCKS


def _create_order(order: OrderIn):
    logging.info(f"[OA] Order request for {order.customer}: {len(order.items)} line(s).")

    # Scenario simulation
    for item in order.items:
        if "DOWN" in item.productId:
            logging.error(f"[OA] Simulating outage for {item.productId}.")
            raise HTTPException(status_code=503, detail="Order service temporarily unavailable")
        if "RACE" in item.productId or item.quantity > _available(item.productId):
            logging.warning(f"[OA] Insufficient stock for {item.productId}.")
            raise HTTPException(
                status_code=409,
                detail={"errorCode": "insufficient_stock",
                        "message": f"Insufficient stock for {item.productId}"}
            )

    # Success case
    order_id = f"ord_{uuid.uuid4().hex[:10]}"
    logging.info(f"[OA] Order {order_id} created.")
    return {
        "_id": order_id,
        "status": "pending",
        "totalPrice": order.totalPrice,
        "createdAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    }


@app.post("/api/orders", status_code=201)
def create_order(order: OrderIn):
    """
    Creates an order, simulating outcomes based on the ordered product ids:
        - id contains "DOWN" → HTTP 503
        - id contains "RACE", or quantity above stock → HTTP 409 with a message
        - otherwise → order created
    """
    return _create_order(order)


@app.post("/api/hospital/orders", status_code=201)
def create_hospital_order(order: OrderIn):
    return _create_order(order)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
