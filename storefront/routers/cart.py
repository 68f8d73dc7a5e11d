from collections import OrderedDict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import case, delete, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _stock_of(product_id: int):
    return select(models.Product.stock).where(models.Product.id == product_id).scalar_subquery()


async def get_or_create_cart(db: AsyncSession, user_id: int) -> models.Cart:
    res = await db.execute(select(models.Cart).where(models.Cart.user_id == user_id))
    cart = res.scalar_one_or_none()
    if cart:
        return cart

    cart = models.Cart(user_id=user_id)
    db.add(cart)
    try:
        await db.commit()
    except IntegrityError:
        # Another request created it first
        await db.rollback()
        res = await db.execute(select(models.Cart).where(models.Cart.user_id == user_id))
        cart = res.scalar_one()
    return cart


async def load_cart(db: AsyncSession, cart_id: int) -> models.Cart:
    stmt = (
        select(models.Cart)
        .where(models.Cart.id == cart_id)
        .options(
            selectinload(models.Cart.items)
            .selectinload(models.CartItem.product)
            .selectinload(models.Product.category)
        )
        .execution_options(populate_existing=True)
    )
    res = await db.execute(stmt)
    return res.scalar_one()


async def _load_item(db: AsyncSession, item_id: int) -> models.CartItem:
    stmt = (
        select(models.CartItem)
        .where(models.CartItem.id == item_id)
        .options(selectinload(models.CartItem.product).selectinload(models.Product.category))
        .execution_options(populate_existing=True)
    )
    res = await db.execute(stmt)
    return res.scalar_one()


async def _find_item_id(db: AsyncSession, cart_id: int, product_id: int):
    res = await db.execute(
        select(models.CartItem.id).where(
            models.CartItem.cart_id == cart_id,
            models.CartItem.product_id == product_id,
        )
    )
    return res.scalar_one_or_none()


@router.get("", response_model=schemas.Envelope[schemas.CartOut])
async def view_cart(
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cart = await get_or_create_cart(db, current_user.id)
    return ok(await load_cart(db, cart.id))


@router.post("/items", response_model=schemas.Envelope[schemas.CartItemOut], status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item: schemas.CartItemAdd,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    user_id = current_user.id
    product = await db.get(models.Product, item.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if item.quantity > product.stock:
        raise HTTPException(status_code=400, detail="Not enough stock")

    cart = await get_or_create_cart(db, user_id)
    cart_id = cart.id
    item_id = await _find_item_id(db, cart_id, item.product_id)

    if item_id is None:
        new_item = models.CartItem(cart_id=cart_id, product_id=item.product_id, quantity=item.quantity)
        db.add(new_item)
        try:
            await db.commit()
            item_id = new_item.id
        except IntegrityError:
            await db.rollback()
            item_id = await _find_item_id(db, cart_id, item.product_id)
            # Row now exists; fall through to the increment
            if item_id is None:
                raise
        else:
            logger.info("cart item added", user_id=user_id, product_id=item.product_id, quantity=item.quantity)
            return ok(await _load_item(db, item_id))

    # Single statement so concurrent adds cannot lose an increment
    stmt = (
        update(models.CartItem)
        .where(
            models.CartItem.id == item_id,
            models.CartItem.quantity + item.quantity <= _stock_of(item.product_id),
        )
        .values(quantity=models.CartItem.quantity + item.quantity)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Not enough stock")
    await db.commit()

    logger.info("cart item incremented", user_id=user_id, product_id=item.product_id, quantity=item.quantity)
    return ok(await _load_item(db, item_id))


@router.put("/items/{product_id}", response_model=schemas.Envelope[schemas.CartItemOut])
async def update_cart_item(
    product_id: int,
    payload: schemas.CartItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cart = await get_or_create_cart(db, current_user.id)
    item_id = await _find_item_id(db, cart.id, product_id)
    if item_id is None:
        raise HTTPException(status_code=404, detail="Item not found in cart")

    if payload.quantity == 0:
        await db.execute(
            delete(models.CartItem)
            .where(models.CartItem.id == item_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return ok(None, message="Item removed from cart")

    stmt = (
        update(models.CartItem)
        .where(models.CartItem.id == item_id, _stock_of(product_id) >= payload.quantity)
        .values(quantity=payload.quantity)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Not enough stock")
    await db.commit()
    return ok(await _load_item(db, item_id))


@router.delete("/items/{product_id}", response_model=schemas.Message)
async def remove_from_cart(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cart = await get_or_create_cart(db, current_user.id)
    result = await db.execute(
        delete(models.CartItem)
        .where(models.CartItem.cart_id == cart.id, models.CartItem.product_id == product_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=404, detail="Item not found in cart")
    await db.commit()
    return ok(message="Item removed from cart")


@router.delete("", response_model=schemas.Message)
async def clear_cart(
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cart = await get_or_create_cart(db, current_user.id)
    await db.execute(
        delete(models.CartItem)
        .where(models.CartItem.cart_id == cart.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return ok(message="Cart cleared")


@router.post("/merge", response_model=schemas.Envelope[schemas.CartMergeOut])
async def merge_cart(
    payload: schemas.CartMerge,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Applies an anonymous cart to the caller's cart in one transaction.
    Quantities add to existing rows and are clamped to stock. Replaying
    the same merge_key is a no-op.
    """
    user_id = current_user.id
    cart = await get_or_create_cart(db, user_id)
    cart_id = cart.id

    if payload.merge_key:
        claimed = await db.execute(
            update(models.Cart)
            .where(
                models.Cart.id == cart_id,
                or_(models.Cart.merge_key.is_(None), models.Cart.merge_key != payload.merge_key),
            )
            .values(merge_key=payload.merge_key)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await db.rollback()
            logger.info("cart merge replay ignored", user_id=user_id, merge_key=payload.merge_key)
            return ok({"cart": await load_cart(db, cart_id), "skipped": [], "already_merged": True})

    requested = OrderedDict()
    for line in payload.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    skipped = []
    try:
        for product_id, quantity in requested.items():
            product = await db.get(models.Product, product_id)
            if product is None or product.stock <= 0:
                skipped.append(product_id)
                continue

            item_id = await _find_item_id(db, cart_id, product_id)
            if item_id is None:
                db.add(models.CartItem(cart_id=cart_id, product_id=product_id, quantity=min(quantity, product.stock)))
                await db.flush()
                continue

            stock = _stock_of(product_id)
            merged = models.CartItem.quantity + quantity
            await db.execute(
                update(models.CartItem)
                .where(models.CartItem.id == item_id)
                .values(quantity=case((merged > stock, stock), else_=merged))
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("cart merge conflicted", user_id=user_id)
        raise HTTPException(status_code=409, detail="Cart changed during merge. Please retry.")
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.info("cart merged", user_id=user_id, lines=len(requested), skipped=skipped)
    return ok({"cart": await load_cart(db, cart_id), "skipped": skipped, "already_merged": False})
