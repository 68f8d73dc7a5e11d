from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Local imports
from . import models  # noqa: F401  registers the tables on Base.metadata
from .config import get_settings
from .database import Base, engine
from .logging_config import RequestLogMiddleware, configure_logging, get_logger
from .responses import register_exception_handlers
from .routers import admin, auth, cart, categories, drops, orders, products
from .seed import ensure_admin

settings = get_settings()

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        # Schema is created in place; there are no migrations
        await conn.run_sync(Base.metadata.create_all)
    await ensure_admin(settings)
    logger.info("api started", app_name=settings.app_name, env=settings.env, cache=settings.redis_url is not None)
    yield
    await engine.dispose()
    logger.info("api stopped")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)

register_exception_handlers(app)

for module in (auth, products, categories, drops, cart, orders, admin):
    app.include_router(module.router)


@app.get("/")
async def read_root():
    return {"message": settings.app_name, "status": "running"}


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000)
