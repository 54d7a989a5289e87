# cart_engine/data/models/cart_item.py
import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import relationship

from cart_engine.data.database import Base, UTCDateTime
from cart_engine.data.models.cart import utcnow


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = Column(String(64), nullable=False, index=True)
    variant_id = Column(String(64), nullable=True)

    quantity = Column(Integer, nullable=False)
    price_at_add = Column(Numeric(12, 2), nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    cart = relationship("CartModel", back_populates="items")

    # NULL variant ids never collide in a plain unique constraint, hence the partial index
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_items_cart_product_variant"),
        Index(
            "uq_cart_items_cart_product_no_variant",
            "cart_id",
            "product_id",
            unique=True,
            postgresql_where=text("variant_id IS NULL"),
            sqlite_where=text("variant_id IS NULL"),
        ),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )
