"""
This module provides the communication client for the remote Order API:
- Product catalog, inventory and legacy stock listings (read)
- Order creation (write)
The client encapsulates endpoint selection per portal context, authentication
headers, timeouts and the mapping of failed submissions to SubmissionFailed.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from .models import OrderRequest

# Service address and credentials (normally from env vars)
ORDER_API_URL = os.environ.get("ORDER_API_URL", "http://localhost:8000/api")
ORDER_API_TOKEN = os.environ.get("ORDER_API_TOKEN")
ORDER_API_TIMEOUT = float(os.environ.get("ORDER_API_TIMEOUT", "5.0"))

GENERIC_SUBMISSION_ERROR = "Order submission failed"

log = logging.getLogger(__name__)


class ApiContext(str, Enum):
    HOSPITAL = "hospital"
    MR = "mr"
    SUPPLIER = "supplier"
    ADMIN = "admin"


ENDPOINTS: Dict[ApiContext, Dict[str, str]] = {
    ApiContext.HOSPITAL: {
        "products": "/products",
        "inventory": "/inventory",
        "stock": "/stocks",
        "orders": "/hospital/orders",
    },
    ApiContext.MR: {
        "products": "/products",
        "inventory": "/inventory",
        "stock": "/stocks",
        "orders": "/orders",
    },
    ApiContext.SUPPLIER: {
        "products": "/products",
        "inventory": "/suppliers/{supplier_id}/inventories",
        "stock": "/stocks",
        "orders": "/orders",
    },
    ApiContext.ADMIN: {
        "products": "/products",
        "inventory": "/inventory",
        "stock": "/stocks",
        "orders": "/orders",
    },
}


class SubmissionFailed(Exception):
    """
    Raised when the order-creation request fails.

    Attributes:
        message (str): Server-provided message when available, otherwise a generic text.
        status_code (int | None): HTTP status of the rejection, None for transport errors.
    """

    def __init__(self, message: str = GENERIC_SUBMISSION_ERROR, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def server_message(response: httpx.Response) -> Optional[str]:
    """Extracts a human-readable message from an error response body, if any."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        if isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
        detail = body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
        if isinstance(detail, dict) and isinstance(detail.get("message"), str):
            return detail["message"]
    return None


class OrderApiClient:
    """
    Async client for the Order API.

    Args:
        context (ApiContext): Portal context deciding which endpoint paths are used.
        base_url (str): API base URL, defaults to ORDER_API_URL.
        token (str | None): Bearer token, defaults to ORDER_API_TOKEN.
        transport (httpx.AsyncBaseTransport | None): Custom transport (tests, proxies).
    """

    def __init__(self, context: ApiContext = ApiContext.HOSPITAL, base_url: str = ORDER_API_URL,
                 token: Optional[str] = ORDER_API_TOKEN, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.context = ApiContext(context)
        self.paths = ENDPOINTS[self.context]
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        timeout_config = httpx.Timeout(ORDER_API_TIMEOUT, read=8.0)
        self.client = httpx.AsyncClient(base_url=base_url, headers=headers,
                                        timeout=timeout_config, transport=transport)

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.get(path, params=params)
        if response.status_code == 401:
            log.error(f"Order API rejected credentials for {path} (401).")
        response.raise_for_status()
        return response.json()

    async def fetch_products(self) -> Any:
        """
        Fetches the product catalog.
        Returns:
            The parsed JSON body, in whatever envelope the API uses.
        Raises:
            httpx.HTTPError: On transport failure or an error status.
            ValueError: If the body is not JSON.
        """
        return await self._get(self.paths["products"])

    async def fetch_inventory(self, supplier_id: Optional[str] = None,
                              low_stock: bool = False, limit: Optional[int] = None) -> Any:
        """
        Fetches inventory records, optionally supplier- or low-stock-scoped.
        Raises:
            ValueError: In supplier context when no supplier id is given.
        """
        path = self.paths["inventory"]
        if "{supplier_id}" in path:
            if not supplier_id:
                raise ValueError("supplier_id is required for supplier-scoped inventory")
            path = path.format(supplier_id=supplier_id)
        params: Dict[str, Any] = {}
        if low_stock:
            params["lowStock"] = "true"
        if limit:
            params["limit"] = limit
        return await self._get(path, params=params or None)

    async def fetch_stock(self) -> Any:
        """Fetches legacy stock records."""
        return await self._get(self.paths["stock"])

    async def create_order(self, order: OrderRequest) -> Dict[str, Any]:
        """
        Creates a new order via the Order API.
        Args:
            order (OrderRequest): The serialized cart.
        Returns:
            dict: JSON response acknowledging the created order.
        Raises:
            SubmissionFailed: On rejection (message taken from the server) or transport error.
        """
        payload = order.model_dump(exclude_none=True)
        log_prefix = f"[Order: {order.customer}]"
        try:
            response = await self.client.post(self.paths["orders"], json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = server_message(e.response) or GENERIC_SUBMISSION_ERROR
            log.error(f"{log_prefix} Order API rejected order (HTTP {e.response.status_code}): {message}")
            raise SubmissionFailed(message, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            log.error(f"{log_prefix} Order API unreachable: {e!r}")
            raise SubmissionFailed(GENERIC_SUBMISSION_ERROR) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        return body if isinstance(body, dict) else {"data": body}
