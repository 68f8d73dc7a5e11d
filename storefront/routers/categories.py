from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import require_admin
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


def _with_product_counts():
    product_count = func.count(models.Product.id).label("product_count")
    return (
        select(models.Category, product_count)
        .outerjoin(models.Product, models.Product.category_id == models.Category.id)
        .group_by(models.Category.id)
        .order_by(models.Category.name.asc())
    )


async def _product_count(db: AsyncSession, category_id: int) -> int:
    result = await db.execute(
        select(func.count(models.Product.id)).where(models.Product.category_id == category_id)
    )
    return result.scalar_one()


async def _list(db: AsyncSession, stmt) -> list:
    categories = []
    for category, count in (await db.execute(stmt)).all():
        category.product_count = count
        categories.append(category)
    return categories


@router.get("", response_model=schemas.Envelope[List[schemas.CategoryOut]])
async def get_categories(db: AsyncSession = Depends(get_db)):
    categories = await _list(db, _with_product_counts())
    logger.info("categories listed", count=len(categories))
    return ok(categories)


@router.get("/active", response_model=schemas.Envelope[List[schemas.CategoryOut]])
async def get_active_categories(db: AsyncSession = Depends(get_db)):
    stmt = _with_product_counts().where(models.Category.is_active.is_(True))
    return ok(await _list(db, stmt))


@router.get("/{category_id}", response_model=schemas.Envelope[schemas.CategoryDetail])
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.Category)
        .where(models.Category.id == category_id)
        .options(selectinload(models.Category.products))
    )
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    category.product_count = len(category.products)
    return ok(category)


@router.post(
    "",
    response_model=schemas.Envelope[schemas.CategoryOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_category(payload: schemas.CategoryCreate, db: AsyncSession = Depends(get_db)):
    category = models.Category(**payload.model_dump())
    db.add(category)
    await db.commit()
    category.product_count = 0
    logger.info("category created", category_id=category.id)
    return ok(category)


@router.put(
    "/{category_id}",
    response_model=schemas.Envelope[schemas.CategoryOut],
    dependencies=[Depends(require_admin)],
)
async def update_category(category_id: int, payload: schemas.CategoryUpdate, db: AsyncSession = Depends(get_db)):
    category = await db.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field != "description":
            continue
        setattr(category, field, value)
    await db.commit()

    category.product_count = await _product_count(db, category_id)
    logger.info("category updated", category_id=category_id)
    return ok(category)


@router.delete("/{category_id}", response_model=schemas.Message, dependencies=[Depends(require_admin)])
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    category = await db.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    if await _product_count(db, category_id) > 0:
        raise HTTPException(status_code=400, detail="Cannot delete category with associated products")

    await db.delete(category)
    await db.commit()
    logger.info("category deleted", category_id=category_id)
    return ok(message="Category deleted successfully")
