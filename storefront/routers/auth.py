from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import auth, models, schemas
from ..database import get_db
from ..logging_config import get_logger
from ..responses import ok

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6


def _auth_payload(user: models.User) -> dict:
    return {"user": user, "access_token": auth.token_for(user), "token_type": "bearer"}


@router.post("/register", response_model=schemas.Envelope[schemas.AuthOut], status_code=status.HTTP_201_CREATED)
async def register(payload: schemas.UserCreate, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(models.User).where(models.User.email == payload.email))
    if result.scalar_one_or_none():
        logger.info("registration rejected, email taken", email=payload.email)
        raise HTTPException(status_code=400, detail="User already exists")

    new_user = models.User(
        email=payload.email,
        hashed_password=auth.get_password_hash(payload.password),
        name=payload.name,
        role=models.Role.USER.value,
    )
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info("user registered", user_id=new_user.id)
    return ok(_auth_payload(new_user))


@router.post("/login", response_model=schemas.Envelope[schemas.AuthOut])
async def login(credentials: schemas.UserLogin, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(models.User).where(models.User.email == credentials.email))
    user = result.scalar_one_or_none()
    if not user or not auth.verify_password(credentials.password, user.hashed_password):
        logger.info("login failed", email=credentials.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info("login succeeded", user_id=user.id, role=user.role)
    return ok(_auth_payload(user))


@router.get("/me", response_model=schemas.Envelope[schemas.UserOut])
async def me(current_user: models.User = Depends(auth.get_current_user)):
    return ok(current_user)


@router.put("/profile", response_model=schemas.Envelope[schemas.UserOut])
async def update_profile(
    payload: schemas.ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if payload.email and payload.email != current_user.email:
        result = await db.execute(select(models.User.id).where(models.User.email == payload.email))
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=409, detail="Email already in use")
        current_user.email = payload.email
    if payload.name:
        current_user.name = payload.name

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already in use")
    return ok(current_user, message="Profile updated successfully")


@router.put("/change-password", response_model=schemas.Message)
async def change_password(
    payload: schemas.PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")
    if payload.current_password == payload.new_password:
        raise HTTPException(status_code=400, detail="New password must be different from current password")
    if not current_user.is_local:
        raise HTTPException(status_code=400, detail="Password change is not available for OAuth accounts")
    if not auth.verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    current_user.hashed_password = auth.get_password_hash(payload.new_password)
    await db.commit()
    logger.info("password changed", user_id=current_user.id)
    return ok(message="Password changed successfully")


@router.delete("/account", response_model=schemas.Message)
async def delete_account(
    payload: schemas.AccountDelete,
    db: AsyncSession = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if not current_user.is_local:
        raise HTTPException(status_code=400, detail="Account deletion is not available for OAuth accounts")
    if not auth.verify_password(payload.password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Password is incorrect")

    user_id = current_user.id
    await db.delete(current_user)
    await db.commit()
    logger.info("account deleted", user_id=user_id)
    return ok(message="Account deleted successfully")


@router.get("/account-type", response_model=schemas.Envelope[schemas.AccountTypeOut])
async def account_type(current_user: models.User = Depends(auth.get_current_user)):
    is_local = current_user.is_local
    return ok({"is_local": is_local, "type": "local" if is_local else "oauth"})
