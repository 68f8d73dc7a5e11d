from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy import or_
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .. import cache, models, schemas
from ..auth import require_admin
from ..config import get_settings
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

NON_NULLABLE = {"name", "price", "cover", "category_id", "stock", "is_new", "is_top_sale", "is_limited", "currency_type"}


def _newest_first(stmt):
    return stmt.order_by(models.Product.created_at.desc(), models.Product.id.desc())


async def _load_product(db: AsyncSession, product_id: int, with_drops: bool = False):
    options = [selectinload(models.Product.category)]
    if with_drops:
        options.append(selectinload(models.Product.drop_products).selectinload(models.DropProduct.drop))
    result = await db.execute(
        select(models.Product)
        .where(models.Product.id == product_id)
        .options(*options)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _require_category(db: AsyncSession, category_id: int) -> None:
    if await db.get(models.Category, category_id) is None:
        raise HTTPException(status_code=400, detail="Category not found")


@router.get("", response_model=schemas.Envelope[List[schemas.ProductOut]])
async def get_products(
    category_id: Optional[int] = None,
    sort_by_price: Optional[str] = Query(None, pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
):
    unfiltered = category_id is None and sort_by_price is None
    if unfiltered:
        cached = cache.get_json(cache.PRODUCTS_LIST_KEY)
        if cached is not None:
            return ok(cached)

    query = select(models.Product)
    if category_id is not None:
        query = query.where(models.Product.category_id == category_id)

    if sort_by_price == "asc":
        query = query.order_by(models.Product.price.asc(), models.Product.id.asc())
    elif sort_by_price == "desc":
        query = query.order_by(models.Product.price.desc(), models.Product.id.asc())
    else:
        query = _newest_first(query)

    result = await db.execute(query)
    products = result.scalars().all()

    if unfiltered:
        payload = jsonable_encoder([schemas.ProductOut.model_validate(p) for p in products])
        cache.set_json(cache.PRODUCTS_LIST_KEY, payload, get_settings().products_cache_ttl)
    return ok(products)


@router.get("/search", response_model=schemas.Envelope[List[schemas.ProductOut]])
async def search_products(q: str = "", db: AsyncSession = Depends(get_db)):
    pattern = f"%{q.strip()}%"
    query = select(models.Product).where(
        or_(models.Product.name.ilike(pattern), models.Product.description.ilike(pattern))
    )
    result = await db.execute(_newest_first(query))
    return ok(result.scalars().all())


@router.get("/category/{category_id}", response_model=schemas.Envelope[List[schemas.ProductWithCategory]])
async def get_products_by_category(category_id: int, db: AsyncSession = Depends(get_db)):
    query = (
        select(models.Product)
        .where(models.Product.category_id == category_id)
        .options(selectinload(models.Product.category))
    )
    result = await db.execute(_newest_first(query))
    return ok(result.scalars().all())


@router.get("/{product_id}", response_model=schemas.Envelope[schemas.ProductDetail])
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await _load_product(db, product_id, with_drops=True)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return ok(product)


@router.post(
    "",
    response_model=schemas.Envelope[schemas.ProductWithCategory],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_product(product: schemas.ProductCreate, db: AsyncSession = Depends(get_db)):
    await _require_category(db, product.category_id)
    new_product = models.Product(**product.model_dump())
    db.add(new_product)
    await db.commit()
    cache.invalidate(cache.PRODUCTS_LIST_KEY)
    logger.info("product created", product_id=new_product.id)
    return ok(await _load_product(db, new_product.id))


@router.put(
    "/{product_id}",
    response_model=schemas.Envelope[schemas.ProductWithCategory],
    dependencies=[Depends(require_admin)],
)
async def update_product(product_id: int, payload: schemas.ProductUpdate, db: AsyncSession = Depends(get_db)):
    product = await db.get(models.Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field not in NON_NULLABLE
    }
    if "category_id" in updates:
        await _require_category(db, updates["category_id"])
    for field, value in updates.items():
        setattr(product, field, value)
    if "stock" in updates:
        product.version = product.version + 1
    await db.commit()

    cache.invalidate(cache.PRODUCTS_LIST_KEY)
    logger.info("product updated", product_id=product_id, fields=sorted(updates))
    return ok(await _load_product(db, product_id))


@router.delete("/{product_id}", response_model=schemas.Message, dependencies=[Depends(require_admin)])
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await db.get(models.Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    await db.delete(product)
    await db.commit()
    cache.invalidate(cache.PRODUCTS_LIST_KEY)
    logger.info("product deleted", product_id=product_id)
    return ok(message="Product deleted")
