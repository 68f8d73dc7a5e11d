import secrets
import string
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, update
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .. import cache, models, schemas
from ..auth import get_current_user
from ..config import get_settings
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok
from ..worker import send_order_email

logger = get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

BASE36 = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(BASE36) for _ in range(5))
    return f"KAI-{timestamp}-{suffix}"


def mask_card(card_number: str) -> str:
    return "**** **** **** " + card_number[-4:]


def shipping_cost(subtotal: float) -> float:
    settings = get_settings()
    return 0.0 if subtotal >= settings.free_shipping_threshold else settings.shipping_fee


def _orders_query(user_id: int):
    return (
        select(models.Order)
        .where(models.Order.user_id == user_id)
        .options(selectinload(models.Order.items))
    )


@router.post("", response_model=schemas.Envelope[schemas.OrderOut], status_code=status.HTTP_201_CREATED)
async def create_order_from_cart(
    checkout: schemas.CheckoutIn,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    # 1. Get User & Cart
    user_id = current_user.id
    user_email = current_user.email

    cart_res = await db.execute(
        select(models.Cart)
        .where(models.Cart.user_id == user_id)
        .options(selectinload(models.Cart.items).selectinload(models.CartItem.product))
    )
    cart = cart_res.scalar_one_or_none()

    if not cart or not cart.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    subtotal = 0.0
    order_items = []

    # 2. Transaction Start
    try:
        for cart_item in cart.items:
            product = cart_item.product
            if product.stock < cart_item.quantity:
                raise HTTPException(status_code=400, detail=f"Out of stock: {product.name}")

            # Optimistic Locking
            stmt = (
                update(models.Product)
                .where(models.Product.id == product.id)
                .where(models.Product.version == product.version)
                .where(models.Product.stock >= cart_item.quantity)
                .values(stock=models.Product.stock - cart_item.quantity, version=models.Product.version + 1)
                .execution_options(synchronize_session=False)
            )
            update_result = await db.execute(stmt)

            if update_result.rowcount == 0:
                raise HTTPException(status_code=409, detail=f"Stock changed for {product.name}. Please retry.")

            order_items.append(
                models.OrderItem(
                    product_id=product.id,
                    name=product.name,
                    quantity=cart_item.quantity,
                    price_at_purchase=product.price,
                )
            )
            subtotal += product.price * cart_item.quantity

        # 3. Finalize
        subtotal = round(subtotal, 2)
        shipping = shipping_cost(subtotal)
        shipping_info = checkout.shipping_info
        payment_info = checkout.payment_info
        new_order = models.Order(
            number=generate_order_number(),
            user_id=user_id,
            status=models.OrderStatus.CONFIRMED.value,
            subtotal=subtotal,
            shipping=shipping,
            total=round(subtotal + shipping, 2),
            full_name=shipping_info.full_name,
            email=shipping_info.email,
            phone=shipping_info.phone,
            address=shipping_info.address,
            city=shipping_info.city,
            postal_code=shipping_info.postal_code,
            country=shipping_info.country,
            card_number=mask_card(payment_info.card_number),
            card_name=payment_info.card_name,
            items=order_items,
        )
        db.add(new_order)

        await db.execute(
            delete(models.CartItem)
            .where(models.CartItem.cart_id == cart.id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order_number = new_order.number
    cache.invalidate(cache.PRODUCTS_LIST_KEY)
    logger.info("order confirmed", user_id=user_id, order_number=order_number, total=new_order.total)

    try:
        send_order_email.delay(user_email, order_number, new_order.total)
    except Exception as exc:
        logger.warning("order email not queued", order_number=order_number, error=str(exc))

    result = await db.execute(_orders_query(user_id).where(models.Order.number == order_number))
    return ok(result.scalar_one())


@router.get("", response_model=schemas.Envelope[List[schemas.OrderOut]])
async def get_orders(
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    result = await db.execute(
        _orders_query(current_user.id).order_by(models.Order.created_at.desc(), models.Order.id.desc())
    )
    return ok(result.scalars().all())


@router.get("/{number}", response_model=schemas.Envelope[schemas.OrderOut])
async def get_order(
    number: str,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    result = await db.execute(_orders_query(current_user.id).where(models.Order.number == number))
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return ok(order)
