# cart_engine/tasks/expire.py
from cart_engine.celery_worker import celery_app
from cart_engine.data.database import SessionLocal
from cart_engine.services.cart_service import CartService
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_engine.tasks.expire.expire_carts_task")
def expire_carts_task() -> int:
    """Marks active carts past their expiry as abandoned. Safe to run repeatedly."""
    logger.info("Expire carts task started")

    db = SessionLocal()
    try:
        return CartService(db).cleanup_expired_carts()
    except Exception:
        logger.error("Expire carts task failed", exc_info=True)
        raise
    finally:
        db.close()
