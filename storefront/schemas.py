import re
from datetime import datetime, timezone
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
    StringConstraints,
    computed_field,
    field_validator,
    model_validator,
)

from .models import DropStatus, Role

T = TypeVar("T")

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
PasswordStr = Annotated[str, StringConstraints(min_length=1)]


def _check_name(value: Optional[str], label: str) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"{label} cannot be empty")
    if len(value) < 2:
        raise ValueError(f"{label} must be at least 2 characters long")
    return value


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- ENVELOPE ---
class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class Message(BaseModel):
    success: bool = True
    data: None = None
    message: Optional[str] = None


# --- USER ---
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_name(v, "Name")


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class UserOut(BaseModel):
    id: int
    email: str
    name: str
    role: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AuthOut(BaseModel):
    user: UserOut
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[int] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if v is not None else v

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_name(v, "Name")


class PasswordChange(BaseModel):
    current_password: PasswordStr
    new_password: PasswordStr


class AccountDelete(BaseModel):
    password: PasswordStr


class AccountTypeOut(BaseModel):
    is_local: bool
    type: str


class RoleUpdate(BaseModel):
    role: Role


# --- CATEGORY ---
class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_name(v, "Category name")


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_name(v, "Category name")


class CategorySummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class CategoryOut(CategorySummary):
    created_at: datetime
    updated_at: datetime
    product_count: int = 0


# --- PRODUCT ---
class ProductBase(BaseModel):
    name: NonEmptyStr
    price: float = Field(ge=0)
    cover: str
    category_id: int
    description: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    is_new: bool = False
    is_top_sale: bool = False
    is_limited: bool = False
    currency_type: str = "€"


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[NonEmptyStr] = None
    price: Optional[float] = Field(default=None, ge=0)
    cover: Optional[str] = None
    category_id: Optional[int] = None
    description: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    is_new: Optional[bool] = None
    is_top_sale: Optional[bool] = None
    is_limited: Optional[bool] = None
    currency_type: Optional[str] = None


class ProductOut(ProductBase):
    id: int
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductWithCategory(ProductOut):
    category: CategorySummary


class CategoryDetail(CategoryOut):
    products: List[ProductOut] = []


# --- DROP ---
class DropSummary(BaseModel):
    id: int
    name: str
    status: DropStatus
    release_date: datetime
    end_date: Optional[datetime] = None
    banner_image: str
    primary_color: str
    secondary_color: str
    accent_color: str

    class Config:
        from_attributes = True


class DropCreate(BaseModel):
    name: NonEmptyStr
    description: str
    status: DropStatus = DropStatus.ACTIVE
    release_date: datetime
    end_date: Optional[datetime] = None
    banner_image: str
    primary_color: str
    secondary_color: str
    accent_color: str

    @field_validator("release_date", "end_date")
    @classmethod
    def to_utc(cls, v):
        return as_utc(v)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.release_date:
            raise ValueError("end_date cannot be earlier than release_date")
        return self


class DropUpdate(BaseModel):
    name: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    status: Optional[DropStatus] = None
    release_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    banner_image: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None

    @field_validator("release_date", "end_date")
    @classmethod
    def to_utc(cls, v):
        return as_utc(v)


class DropProductAdd(BaseModel):
    product_id: int
    drop_price: Optional[float] = Field(default=None, ge=0)
    is_limited: bool = False


class DropProductOut(BaseModel):
    id: int
    drop_id: int
    product_id: int
    drop_price: Optional[float] = None
    is_limited: bool
    product: ProductOut

    class Config:
        from_attributes = True


class DropProductDetail(DropProductOut):
    drop: DropSummary


class DropOut(DropSummary):
    description: str
    created_at: datetime
    updated_at: datetime
    products: List[DropProductOut] = []


class ProductDropOut(BaseModel):
    id: int
    drop_id: int
    drop_price: Optional[float] = None
    is_limited: bool
    drop: DropSummary

    class Config:
        from_attributes = True


class ProductDetail(ProductWithCategory):
    drop_products: List[ProductDropOut] = []


# --- CART ---
class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(ge=0)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: ProductWithCategory

    class Config:
        from_attributes = True


class CartOut(BaseModel):
    id: int
    items: List[CartItemOut]

    class Config:
        from_attributes = True

    @computed_field
    @property
    def total(self) -> float:
        return round(sum(item.product.price * item.quantity for item in self.items), 2)

    @computed_field
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartMergeItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CartMerge(BaseModel):
    items: List[CartMergeItem] = []
    merge_key: Optional[str] = Field(default=None, max_length=64)


class CartMergeOut(BaseModel):
    cart: CartOut
    skipped: List[int] = []
    already_merged: bool = False


# --- ORDER ---
class ShippingInfo(BaseModel):
    full_name: NonEmptyStr
    email: EmailStr
    phone: NonEmptyStr
    address: NonEmptyStr
    city: NonEmptyStr
    postal_code: NonEmptyStr
    country: NonEmptyStr


class PaymentInfo(BaseModel):
    card_number: str
    expiry_date: Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^(0[1-9]|1[0-2])/\d{2}$")]
    cvv: Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\d{3,4}$")]
    card_name: NonEmptyStr

    @field_validator("card_number")
    @classmethod
    def check_card_number(cls, v):
        digits = re.sub(r"\s", "", v)
        if not re.fullmatch(r"\d{16}", digits):
            raise ValueError("Card number must have 16 digits")
        return digits


class CheckoutIn(BaseModel):
    shipping_info: ShippingInfo
    payment_info: PaymentInfo


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    name: str
    quantity: int
    price_at_purchase: float

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    number: str
    status: str
    subtotal: float
    shipping: float
    total: float
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    postal_code: str
    country: str
    card_number: str
    card_name: str
    created_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


# --- ADMIN ---
class UsersStats(BaseModel):
    total: int
    label: str = "Total Users"


class ProductsStats(BaseModel):
    total: int
    low_stock: int
    label: str = "Products"


class DropsStats(BaseModel):
    total: int
    active: int
    label: str = "Collections"


class OrdersStats(BaseModel):
    total: int
    label: str = "Orders"


class DashboardOut(BaseModel):
    users: UsersStats
    products: ProductsStats
    drops: DropsStats
    orders: OrdersStats
