import uuid
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError

from ..logging_config import get_logger

logger = get_logger(__name__)


class LocalCartItem(BaseModel):
    id: int
    name: str
    price: float
    cover: str
    currency_type: str = "€"
    quantity: int
    stock: int
    category_id: int


class LocalCartState(BaseModel):
    items: List[LocalCartItem] = []
    merge_key: Optional[str] = None


def summarize(items: List[LocalCartItem]) -> dict:
    return {
        "items": [item.model_dump() for item in items],
        "total": round(sum(item.price * item.quantity for item in items), 2),
        "item_count": sum(item.quantity for item in items),
    }


class LocalCart:
    """Anonymous cart persisted to a JSON file. Stock is checked locally
    against the stock recorded when the product was added."""

    def __init__(self, path):
        self.path = Path(path)
        self._listeners: List[Callable[[dict], None]] = []

    def _load(self) -> LocalCartState:
        if not self.path.exists():
            return LocalCartState()
        try:
            return LocalCartState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            logger.warning("local cart unreadable, starting empty", path=str(self.path), error=str(exc))
            return LocalCartState()

    def _save(self, state: LocalCartState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(), encoding="utf-8")
        cart = summarize(state.items)
        for listener in list(self._listeners):
            listener(cart)

    def items(self) -> List[LocalCartItem]:
        return self._load().items

    def get_cart(self) -> dict:
        return summarize(self._load().items)

    def get_item(self, product_id: int) -> Optional[LocalCartItem]:
        return next((item for item in self.items() if item.id == product_id), None)

    def contains(self, product_id: int) -> bool:
        return self.get_item(product_id) is not None

    def add(self, product: dict, quantity: int = 1) -> bool:
        """Adds ``quantity`` of a product (an API product dict). Returns
        False when the stock would be exceeded."""
        if quantity <= 0:
            return False
        state = self._load()
        existing = next((item for item in state.items if item.id == product["id"]), None)

        if existing:
            new_quantity = existing.quantity + quantity
            if new_quantity > product["stock"]:
                logger.info("not enough stock", product_id=product["id"])
                return False
            existing.quantity = new_quantity
            existing.stock = product["stock"]
        else:
            if quantity > product["stock"]:
                logger.info("not enough stock", product_id=product["id"])
                return False
            state.items.append(
                LocalCartItem(
                    id=product["id"],
                    name=product["name"],
                    price=product["price"],
                    cover=product["cover"],
                    currency_type=product.get("currency_type", "€"),
                    quantity=quantity,
                    stock=product["stock"],
                    category_id=product["category_id"],
                )
            )
        state.merge_key = None
        self._save(state)
        return True

    def update_quantity(self, product_id: int, quantity: int) -> bool:
        state = self._load()
        item = next((item for item in state.items if item.id == product_id), None)
        if not item:
            return False
        if quantity <= 0:
            return self.remove(product_id)
        if quantity > item.stock:
            logger.info("not enough stock", product_id=product_id)
            return False
        item.quantity = quantity
        state.merge_key = None
        self._save(state)
        return True

    def remove(self, product_id: int) -> bool:
        state = self._load()
        state.items = [item for item in state.items if item.id != product_id]
        state.merge_key = None
        self._save(state)
        return True

    def clear(self) -> None:
        self._save(LocalCartState())

    def pending_merge_key(self) -> str:
        """Key identifying the current contents for migration. Reused while
        the contents stay the same, so a retried migration is not applied
        twice."""
        state = self._load()
        if not state.merge_key:
            state.merge_key = uuid.uuid4().hex
            self._save(state)
        return state.merge_key

    def subscribe(self, listener: Callable[[dict], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
