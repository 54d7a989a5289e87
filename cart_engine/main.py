# cart_engine/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from cart_engine.api import create_app
from cart_engine.data.database import Base, engine
from cart_engine.utils.logging import get_logger

# import all models before create_all
from cart_engine.data.models import CartModel, CartItemModel  # noqa: F401

logger = get_logger(__name__)


def init_db():
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.error("Failed to create tables", exc_info=True)
        raise
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = create_app(lifespan=lifespan)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
