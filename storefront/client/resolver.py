from typing import Optional

from ..logging_config import get_logger
from .api import ApiClient, ApiError
from .local_cart import LocalCart

logger = get_logger(__name__)

# Statuses that mean "the cart operation was refused", not "the API is broken"
REJECTED = {400, 404, 409}


def _from_server(cart: dict) -> dict:
    items = [
        {
            "id": line["product_id"],
            "name": line["product"]["name"],
            "price": line["product"]["price"],
            "cover": line["product"]["cover"],
            "currency_type": line["product"]["currency_type"],
            "quantity": line["quantity"],
            "stock": line["product"]["stock"],
            "category_id": line["product"]["category_id"],
        }
        for line in cart["items"]
    ]
    return {"items": items, "total": cart["total"], "item_count": cart["item_count"]}


class CartResolver:
    """
    Serves cart operations from the local cart while anonymous and from
    the server cart once a token is set. On the anonymous to
    authenticated transition the local cart is migrated with a single
    merge request and cleared only after the server accepts it.
    """

    def __init__(self, api: ApiClient, local: LocalCart):
        self.api = api
        self.local = local

    @property
    def authenticated(self) -> bool:
        return bool(self.api.token)

    def set_token(self, token: Optional[str]) -> Optional[dict]:
        previous = self.api.token
        self.api.token = token
        if token and not previous:
            return self._migrate_or_revert(previous)
        return None

    def login(self, email: str, password: str) -> dict:
        previous = self.api.token
        user = self.api.login(email, password)
        if not previous:
            self._migrate_or_revert(previous)
        return user

    def _migrate_or_revert(self, previous: Optional[str]) -> Optional[dict]:
        # Stay anonymous until the local cart is on the server
        try:
            return self.migrate()
        except ApiError:
            self.api.token = previous
            raise

    def logout(self) -> None:
        self.api.logout()

    def migrate(self) -> Optional[dict]:
        items = self.local.items()
        if not items:
            return None

        merge_key = self.local.pending_merge_key()
        lines = [{"product_id": item.id, "quantity": item.quantity} for item in items]
        try:
            result = self.api.merge_cart(lines, merge_key=merge_key)
        except ApiError:
            logger.error("cart migration failed, local cart kept", lines=len(lines), merge_key=merge_key)
            raise

        self.local.clear()
        logger.info(
            "local cart migrated",
            lines=len(lines),
            skipped=result["skipped"],
            already_merged=result["already_merged"],
        )
        return result

    def get_cart(self) -> dict:
        if self.authenticated:
            return _from_server(self.api.get_cart())
        return self.local.get_cart()

    def add(self, product: dict, quantity: int = 1) -> bool:
        if not self.authenticated:
            return self.local.add(product, quantity)
        return self._server_call(self.api.add_cart_item, product["id"], quantity)

    def update_quantity(self, product_id: int, quantity: int) -> bool:
        if not self.authenticated:
            return self.local.update_quantity(product_id, quantity)
        return self._server_call(self.api.update_cart_item, product_id, quantity)

    def remove(self, product_id: int) -> bool:
        if not self.authenticated:
            return self.local.remove(product_id)
        return self._server_call(self.api.remove_cart_item, product_id)

    def clear(self) -> None:
        if self.authenticated:
            self.api.clear_cart()
        else:
            self.local.clear()

    def _server_call(self, method, *args) -> bool:
        try:
            method(*args)
        except ApiError as exc:
            if exc.status_code not in REJECTED:
                raise
            logger.info("cart operation rejected", status_code=exc.status_code, error=exc.message)
            return False
        return True
