from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import require_admin
from ..config import get_settings
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


async def _count(db: AsyncSession, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    result = await db.execute(stmt)
    return result.scalar_one()


@router.get("/dashboard", response_model=schemas.Envelope[schemas.DashboardOut])
async def get_dashboard(db: AsyncSession = Depends(get_db)):
    low_stock_threshold = get_settings().low_stock_threshold
    stats = {
        "users": {"total": await _count(db, models.User)},
        "products": {
            "total": await _count(db, models.Product),
            "low_stock": await _count(db, models.Product, models.Product.stock < low_stock_threshold),
        },
        "drops": {
            "total": await _count(db, models.Drop),
            "active": await _count(db, models.Drop, models.Drop.status == models.DropStatus.ACTIVE.value),
        },
        "orders": {"total": await _count(db, models.Order)},
    }
    return ok(stats)


@router.get("/users", response_model=schemas.Envelope[List[schemas.UserOut]])
async def get_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.User).order_by(models.User.created_at.desc(), models.User.id.desc())
    )
    return ok(result.scalars().all())


@router.put("/users/{user_id}/role", response_model=schemas.Envelope[schemas.UserOut])
async def update_user_role(
    user_id: int,
    payload: schemas.RoleUpdate,
    db: AsyncSession = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    user = await db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.role = payload.role.value
    await db.commit()
    logger.info("user role changed", user_id=user_id, role=user.role, by=admin.id)
    return ok(user)


@router.delete("/users/{user_id}", response_model=schemas.Message)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="Admins cannot delete their own account here")

    user = await db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    await db.delete(user)
    await db.commit()
    logger.info("user deleted", user_id=user_id, by=admin.id)
    return ok(message="User deleted successfully")
