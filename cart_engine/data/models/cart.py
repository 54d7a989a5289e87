# cart_engine/data/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import relationship

from cart_engine.data.database import Base, UTCDateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    #exactly one owner; both null only while the row is being created
    account_id = Column(Integer, nullable=True)
    guest_token = Column(String(64), nullable=True)

    status = Column(String(20), nullable=False, default="active")
    expires_at = Column(UTCDateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "NOT (account_id IS NOT NULL AND guest_token IS NOT NULL)",
            name="ck_carts_single_owner",
        ),
        CheckConstraint(
            "status IN ('active', 'converted', 'abandoned')",
            name="ck_carts_status",
        ),
        Index(
            "uq_carts_active_account",
            "account_id",
            unique=True,
            postgresql_where=text("status = 'active' AND account_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND account_id IS NOT NULL"),
        ),
        Index(
            "uq_carts_active_guest",
            "guest_token",
            unique=True,
            postgresql_where=text("status = 'active' AND guest_token IS NOT NULL"),
            sqlite_where=text("status = 'active' AND guest_token IS NOT NULL"),
        ),
        Index("idx_carts_status_expires_at", "status", "expires_at"),
    )
