from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..logging_config import get_logger

logger = get_logger(__name__)


class ApiError(Exception):
    """Raised when the API answers with an error envelope."""

    def __init__(self, status_code: int, message: str, details: Optional[list] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.details = details or []


class ApiClient:
    """
    Thin synchronous client for the storefront API. Unwraps the
    {success, data} envelope and raises ApiError on failures.

    Pass ``http`` to reuse an existing httpx.Client (for instance a
    FastAPI TestClient).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http: Optional[httpx.Client] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token

    def _request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = self.http.request(method, path, json=json, params=params, headers=headers)
        try:
            body = response.json()
        except ValueError:
            raise ApiError(response.status_code, response.text or "Invalid response")

        if response.is_error or not body.get("success", False):
            error = ApiError(response.status_code, body.get("error", "Request failed"), body.get("details"))
            logger.warning("api request failed", method=method, path=path, status_code=response.status_code)
            raise error
        return body.get("data")

    # --- AUTH ---
    def register(self, email: str, password: str, name: str) -> dict:
        data = self._request("POST", "/api/auth/register", json={"email": email, "password": password, "name": name})
        self.token = data["access_token"]
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        return data["user"]

    def logout(self) -> None:
        self.token = None

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me")

    # --- CATALOGUE ---
    def get_products(self, **filters) -> List[dict]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", "/api/products", params=params or None)

    def get_product(self, product_id: int) -> dict:
        return self._request("GET", f"/api/products/{product_id}")

    # --- CART ---
    def get_cart(self) -> dict:
        return self._request("GET", "/api/cart")

    def add_cart_item(self, product_id: int, quantity: int = 1) -> dict:
        return self._request("POST", "/api/cart/items", json={"product_id": product_id, "quantity": quantity})

    def update_cart_item(self, product_id: int, quantity: int) -> Optional[dict]:
        return self._request("PUT", f"/api/cart/items/{product_id}", json={"quantity": quantity})

    def remove_cart_item(self, product_id: int) -> None:
        self._request("DELETE", f"/api/cart/items/{product_id}")

    def clear_cart(self) -> None:
        self._request("DELETE", "/api/cart")

    def merge_cart(self, items: Iterable[Dict[str, int]], merge_key: Optional[str] = None) -> dict:
        return self._request("POST", "/api/cart/merge", json={"items": list(items), "merge_key": merge_key})

    # --- ORDERS ---
    def checkout(self, shipping_info: dict, payment_info: dict) -> dict:
        return self._request(
            "POST", "/api/orders", json={"shipping_info": shipping_info, "payment_info": payment_info}
        )

    def get_orders(self) -> List[dict]:
        return self._request("GET", "/api/orders")
