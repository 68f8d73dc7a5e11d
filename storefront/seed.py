"""Admin bootstrap and demo catalogue.

Run ``python -m storefront.seed`` to reset the database and load a demo
martial-arts catalogue.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.future import select

from . import models
from .auth import get_password_hash
from .config import Settings, get_settings
from .database import Base, SessionLocal, engine
from .logging_config import configure_logging, get_logger

logger = get_logger(__name__)


async def ensure_admin(settings: Optional[Settings] = None) -> None:
    """Create the configured admin account, or promote it if it exists."""
    settings = settings or get_settings()
    if not (settings.admin_email and settings.admin_password):
        return

    email = settings.admin_email.strip().lower()
    async with SessionLocal() as db:
        result = await db.execute(select(models.User).where(models.User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            db.add(
                models.User(
                    email=email,
                    hashed_password=get_password_hash(settings.admin_password),
                    name=settings.admin_name,
                    role=models.Role.ADMIN.value,
                )
            )
            logger.info("admin account created", email=email)
        elif user.role != models.Role.ADMIN.value:
            user.role = models.Role.ADMIN.value
            logger.info("admin account promoted", email=email)
        await db.commit()


USERS = [
    ("admin@kaizenshop.com", "admin123", "Kaizen Admin", models.Role.ADMIN),
    ("fighter1@example.com", "fighter123", "Jake Thompson", models.Role.USER),
    ("sensei@example.com", "sensei123", "Master Liu Chen", models.Role.USER),
    ("athlete@example.com", "athlete123", "Sarah Rodriguez", models.Role.USER),
]

CATEGORIES = {
    "Boxing Gloves": "Professional boxing gloves for training and competition",
    "MMA Gloves": "Mixed martial arts gloves for grappling and striking",
    "Rashguards": "Compression shirts for BJJ, MMA and grappling",
    "Fight Shorts": "Shorts built for kicking, sprawling and scrambling",
}

PRODUCTS = [
    # name, category, price, stock, is_new, is_top_sale, is_limited
    ("Kaizen Pro Boxing Gloves 16oz", "Boxing Gloves", 89.99, 25, True, True, False),
    ("Kaizen Sparring Gloves 14oz", "Boxing Gloves", 69.99, 40, False, True, False),
    ("Kaizen Hybrid MMA Gloves", "MMA Gloves", 59.99, 30, True, False, False),
    ("Kaizen Competition MMA Gloves", "MMA Gloves", 74.99, 4, False, False, True),
    ("Kaizen Ronin Rashguard", "Rashguards", 49.99, 50, True, False, False),
    ("Kaizen Dragon Fight Shorts", "Fight Shorts", 44.99, 3, False, True, True),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        for email, password, name, role in USERS:
            db.add(models.User(email=email, hashed_password=get_password_hash(password), name=name, role=role.value))

        categories = {name: models.Category(name=name, description=description) for name, description in CATEGORIES.items()}
        db.add_all(categories.values())

        products = []
        for name, category, price, stock, is_new, is_top_sale, is_limited in PRODUCTS:
            products.append(
                models.Product(
                    name=name,
                    category=categories[category],
                    price=price,
                    stock=stock,
                    cover=f"https://cdn.kaizenshop.com/products/{name.lower().replace(' ', '-')}.jpg",
                    description=f"{name} by Kaizen.",
                    is_new=is_new,
                    is_top_sale=is_top_sale,
                    is_limited=is_limited,
                )
            )
        db.add_all(products)

        now = datetime.now(timezone.utc)
        drop = models.Drop(
            name="Samurai Spirit",
            description="Limited autumn collection inspired by feudal Japan",
            status=models.DropStatus.ACTIVE.value,
            release_date=now,
            end_date=now + timedelta(days=30),
            banner_image="https://cdn.kaizenshop.com/drops/samurai-spirit.jpg",
            primary_color="#1a1a1a",
            secondary_color="#b22222",
            accent_color="#d4af37",
        )
        drop.products = [
            models.DropProduct(product=products[3], drop_price=64.99, is_limited=True),
            models.DropProduct(product=products[5], is_limited=True),
        ]
        db.add(drop)
        await db.commit()

    logger.info("database seeded", users=len(USERS), categories=len(CATEGORIES), products=len(PRODUCTS))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
