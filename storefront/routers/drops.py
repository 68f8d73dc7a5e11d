from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import require_admin
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/drops", tags=["drops"])

NULLABLE = {"end_date"}


def _drops_query():
    return select(models.Drop).options(
        selectinload(models.Drop.products).selectinload(models.DropProduct.product)
    ).execution_options(populate_existing=True)


async def _load_drop(db: AsyncSession, drop_id: int):
    result = await db.execute(_drops_query().where(models.Drop.id == drop_id))
    return result.scalar_one_or_none()


async def _get_drop_or_404(db: AsyncSession, drop_id: int) -> models.Drop:
    drop = await db.get(models.Drop, drop_id)
    if not drop:
        raise HTTPException(status_code=404, detail="Drop not found")
    return drop


@router.get("", response_model=schemas.Envelope[List[schemas.DropOut]])
async def get_drops(db: AsyncSession = Depends(get_db)):
    result = await db.execute(_drops_query().order_by(models.Drop.created_at.desc(), models.Drop.id.desc()))
    return ok(result.scalars().all())


@router.get("/active", response_model=schemas.Envelope[List[schemas.DropOut]])
async def get_active_drops(db: AsyncSession = Depends(get_db)):
    query = (
        _drops_query()
        .where(models.Drop.status == models.DropStatus.ACTIVE.value)
        .order_by(models.Drop.release_date.desc(), models.Drop.id.desc())
    )
    result = await db.execute(query)
    return ok(result.scalars().all())


@router.get("/{drop_id}", response_model=schemas.Envelope[schemas.DropOut])
async def get_drop(drop_id: int, db: AsyncSession = Depends(get_db)):
    drop = await _load_drop(db, drop_id)
    if not drop:
        raise HTTPException(status_code=404, detail="Drop not found")
    return ok(drop)


@router.post(
    "",
    response_model=schemas.Envelope[schemas.DropOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_drop(payload: schemas.DropCreate, db: AsyncSession = Depends(get_db)):
    data = payload.model_dump()
    data["status"] = payload.status.value
    drop = models.Drop(**data)
    db.add(drop)
    await db.commit()
    logger.info("drop created", drop_id=drop.id, status=drop.status)
    return ok(await _load_drop(db, drop.id))


@router.put("/{drop_id}", response_model=schemas.Envelope[schemas.DropOut], dependencies=[Depends(require_admin)])
async def update_drop(drop_id: int, payload: schemas.DropUpdate, db: AsyncSession = Depends(get_db)):
    drop = await _get_drop_or_404(db, drop_id)

    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE
    }
    if "status" in updates:
        updates["status"] = updates["status"].value

    release_date = schemas.as_utc(updates.get("release_date", drop.release_date))
    end_date = schemas.as_utc(updates.get("end_date", drop.end_date))
    if end_date is not None and end_date < release_date:
        raise HTTPException(status_code=400, detail="end_date cannot be earlier than release_date")

    for field, value in updates.items():
        setattr(drop, field, value)
    await db.commit()
    logger.info("drop updated", drop_id=drop_id, fields=sorted(updates))
    return ok(await _load_drop(db, drop_id))


@router.delete("/{drop_id}", response_model=schemas.Message, dependencies=[Depends(require_admin)])
async def delete_drop(drop_id: int, db: AsyncSession = Depends(get_db)):
    drop = await _get_drop_or_404(db, drop_id)
    await db.delete(drop)
    await db.commit()
    logger.info("drop deleted", drop_id=drop_id)
    return ok(message="Drop deleted")


# --- DROP PRODUCTS ---
@router.post(
    "/{drop_id}/products",
    response_model=schemas.Envelope[schemas.DropProductOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def add_product_to_drop(drop_id: int, payload: schemas.DropProductAdd, db: AsyncSession = Depends(get_db)):
    await _get_drop_or_404(db, drop_id)
    if await db.get(models.Product, payload.product_id) is None:
        raise HTTPException(status_code=404, detail="Product not found")

    existing = await db.execute(
        select(models.DropProduct.id).where(
            models.DropProduct.drop_id == drop_id,
            models.DropProduct.product_id == payload.product_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Product already in drop")

    drop_product = models.DropProduct(drop_id=drop_id, **payload.model_dump())
    db.add(drop_product)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Product already in drop")

    result = await db.execute(
        select(models.DropProduct)
        .where(models.DropProduct.id == drop_product.id)
        .options(selectinload(models.DropProduct.product))
    )
    logger.info("product added to drop", drop_id=drop_id, product_id=payload.product_id)
    return ok(result.scalar_one())


@router.delete(
    "/{drop_id}/products/{product_id}",
    response_model=schemas.Message,
    dependencies=[Depends(require_admin)],
)
async def remove_product_from_drop(drop_id: int, product_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.DropProduct).where(
            models.DropProduct.drop_id == drop_id,
            models.DropProduct.product_id == product_id,
        )
    )
    drop_product = result.scalar_one_or_none()
    if not drop_product:
        raise HTTPException(status_code=404, detail="Product not in drop")

    await db.delete(drop_product)
    await db.commit()
    logger.info("product removed from drop", drop_id=drop_id, product_id=product_id)
    return ok(message="Product removed from drop")


@router.get("/{drop_id}/products", response_model=schemas.Envelope[List[schemas.DropProductDetail]])
async def get_drop_products(drop_id: int, db: AsyncSession = Depends(get_db)):
    await _get_drop_or_404(db, drop_id)
    result = await db.execute(
        select(models.DropProduct)
        .where(models.DropProduct.drop_id == drop_id)
        .options(selectinload(models.DropProduct.product), selectinload(models.DropProduct.drop))
        .order_by(models.DropProduct.id.asc())
    )
    return ok(result.scalars().all())
