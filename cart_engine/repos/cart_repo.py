# cart_engine/repos/cart_repo.py
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update, delete
from sqlalchemy.orm import Session

from cart_engine.data.models.cart import CartModel
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.domain.owner import AccountOwner, CartOwner
from cart_engine.domain.schemas import CartStatus

ACTIVE = CartStatus.ACTIVE.value


def _owner_clause(owner: CartOwner):
    if isinstance(owner, AccountOwner):
        return CartModel.account_id == owner.account_id
    return CartModel.guest_token == owner.token


def _variant_clause(variant_id: Optional[str]):
    if variant_id is None:
        return CartItemModel.variant_id.is_(None)
    return CartItemModel.variant_id == variant_id


class CartRepo:
    """
    Persistence for carts and cart lines.

    Writes are flushed, never committed here: the service decides where a
    transaction ends. Bulk UPDATE/DELETE statements skip session
    synchronization, so loaded objects are stale until the next commit
    or rollback expires them.
    """

    def __init__(self, db: Session):
        self.db = db

    # carts

    def get_cart(self, cart_id: UUID) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_active_cart(self, cart_id: UUID) -> CartModel | None:
        stmt = select(CartModel).where(CartModel.id == cart_id, CartModel.status == ACTIVE)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_active_cart(self, owner: CartOwner, now: datetime) -> CartModel | None:
        stmt = select(CartModel).where(CartModel.status == ACTIVE, _owner_clause(owner))
        if owner.is_guest:
            stmt = stmt.where(or_(CartModel.expires_at.is_(None), CartModel.expires_at > now))
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def create_cart(self, owner: CartOwner, now: datetime, guest_ttl: timedelta) -> CartModel:
        if isinstance(owner, AccountOwner):
            cart = CartModel(account_id=owner.account_id, guest_token=None, expires_at=None)
        else:
            cart = CartModel(account_id=None, guest_token=owner.token, expires_at=now + guest_ttl)

        cart.status = ACTIVE
        cart.created_at = now
        cart.updated_at = now

        self.db.add(cart)
        self.db.flush()
        return cart

    def abandon_expired_guest_carts(self, token: str, now: datetime) -> int:
        stmt = (
            update(CartModel)
            .where(
                CartModel.guest_token == token,
                CartModel.status == ACTIVE,
                CartModel.expires_at <= now,
            )
            .values(status=CartStatus.ABANDONED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def touch(self, cart_id: UUID, now: datetime) -> None:
        stmt = (
            update(CartModel)
            .where(CartModel.id == cart_id)
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)

    def transition_status(self, cart_id: UUID, from_status: str, to_status: str, now: datetime) -> bool:
        stmt = (
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.status == from_status)
            .values(status=to_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def expire_carts(self, now: datetime) -> int:
        stmt = (
            update(CartModel)
            .where(
                CartModel.status == ACTIVE,
                CartModel.expires_at.is_not(None),
                CartModel.expires_at < now,
            )
            .values(status=CartStatus.ABANDONED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    # cart lines

    def get_items(self, cart_id: UUID) -> List[CartItemModel]:
        stmt = (
            select(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .order_by(CartItemModel.created_at, CartItemModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_item(self, cart_id: UUID, item_id: UUID) -> CartItemModel | None:
        stmt = select(CartItemModel).where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_item(self, cart_id: UUID, product_id: str, variant_id: Optional[str]) -> CartItemModel | None:
        stmt = select(CartItemModel).where(
            CartItemModel.cart_id == cart_id,
            CartItemModel.product_id == product_id,
            _variant_clause(variant_id),
        )
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def get_item_quantity(self, item_id: UUID) -> int | None:
        stmt = select(CartItemModel.quantity).where(CartItemModel.id == item_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def count_items(self, cart_id: UUID) -> Tuple[int, int]:
        stmt = select(
            func.coalesce(func.sum(CartItemModel.quantity), 0),
            func.count(CartItemModel.id),
        ).where(CartItemModel.cart_id == cart_id)
        total, unique = self.db.execute(stmt).one()
        return int(total), int(unique)

    def insert_item(
        self,
        cart_id: UUID,
        product_id: str,
        variant_id: Optional[str],
        quantity: int,
        price: Decimal,
        now: datetime,
    ) -> CartItemModel:
        item = CartItemModel(
            cart_id=cart_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            price_at_add=price,
            created_at=now,
            updated_at=now,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def increment_item_quantity(
        self,
        item_id: UUID,
        by: int,
        max_total: int,
        price: Decimal,
        now: datetime,
    ) -> bool:
        """Adds `by` to the line only if the resulting total stays within `max_total`.

        One conditional UPDATE, so two concurrent increments can never both
        pass the capacity check. Also refreshes the price snapshot.
        """
        stmt = (
            update(CartItemModel)
            .where(
                CartItemModel.id == item_id,
                CartItemModel.quantity + by <= max_total,
            )
            .values(
                quantity=CartItemModel.quantity + by,
                price_at_add=price,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def add_to_item_quantity(self, item_id: UUID, by: int, now: datetime) -> bool:
        #merge only: no capacity check
        stmt = (
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=CartItemModel.quantity + by, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def set_item_quantity(self, cart_id: UUID, item_id: UUID, quantity: int, now: datetime) -> bool:
        stmt = (
            update(CartItemModel)
            .where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
            .values(quantity=quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def move_item(self, item_id: UUID, to_cart_id: UUID, now: datetime) -> bool:
        stmt = (
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(cart_id=to_cart_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def delete_item(self, cart_id: UUID, item_id: UUID) -> bool:
        stmt = (
            delete(CartItemModel)
            .where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def delete_items(self, cart_id: UUID) -> int:
        stmt = (
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    # transaction

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
