# cart_engine/services/cart_service.py
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cart_engine.data.models.cart import CartModel
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.domain.catalog import CatalogProduct, CatalogVariant
from cart_engine.domain.exceptions import (
    CartConflictError,
    CartNotFoundError,
    CartValidationError,
    InsufficientStockError,
    InvalidReferenceError,
)
from cart_engine.domain.owner import AccountOwner, CartOwner, GuestOwner
from cart_engine.domain.schemas import (
    CartCount,
    CartItemView,
    CartStatus,
    CartView,
    StockIssue,
    StockIssueKind,
    StockValidationResult,
)
from cart_engine.repos.cart_repo import CartRepo
from cart_engine.services import pricing
from cart_engine.services.catalog_client import CatalogClient, HttpCatalogClient
from cart_engine.services.lock_service import LockService, merge_lock_key
from cart_engine.utils.retry import conflict_retry
from cart_engine.utils.settings import GUEST_CART_TTL_DAYS
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

ACTIVE = CartStatus.ACTIVE.value
CONVERTED = CartStatus.CONVERTED.value
ABANDONED = CartStatus.ABANDONED.value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe(owner: CartOwner) -> str:
    if isinstance(owner, AccountOwner):
        return f"account {owner.account_id}"
    return "guest"


def _require_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise CartValidationError("Quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise CartValidationError("Quantity must be at least 1", field="quantity")


class CartService:
    """
    Cart use cases.

    Commands (add, update, remove, clear, merge, convert, cleanup) change
    state and end in a commit; queries (get, count, validate) only read.
    Every returned view is reconciled against the live catalog.
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogClient] = None,
        lock_service: Optional[LockService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repo = CartRepo(db)
        self.catalog = catalog or HttpCatalogClient()
        self.lock_service = lock_service or LockService()
        self.clock = clock or utcnow
        self.guest_ttl = timedelta(days=GUEST_CART_TTL_DAYS)

    # =====================================================
    # QUERIES
    # =====================================================
    def get_or_create(self, owner: CartOwner) -> CartView:
        cart = self.resolve_cart(owner)
        return self._cart_view(cart)

    def get_cart(self, cart_id: UUID) -> CartView:
        cart = self.repo.get_cart(cart_id)
        if cart is None:
            raise CartNotFoundError("Cart not found")
        return self._cart_view(cart)

    def get_cart_count(self, owner: CartOwner) -> CartCount:
        cart = self.repo.find_active_cart(owner, self.clock())
        if cart is None:
            return CartCount()

        item_count, unique_item_count = self.repo.count_items(cart.id)
        return CartCount(item_count=item_count, unique_item_count=unique_item_count)

    def validate_stock(self, cart_id: UUID) -> StockValidationResult:
        cart = self.repo.get_cart(cart_id)
        if cart is None:
            raise CartNotFoundError("Cart not found")

        issues = []
        for item in self.repo.get_items(cart.id):
            product, variant = self._load_catalog(item)
            name = product.name if product else item.product_id

            variant_missing = item.variant_id is not None and variant is None
            if product is None or variant_missing or not pricing.is_sellable(product, variant):
                kind, available = StockIssueKind.PRODUCT_UNAVAILABLE, 0
            else:
                available = pricing.available_quantity(product, variant)
                if available == 0:
                    kind = StockIssueKind.OUT_OF_STOCK
                elif available < item.quantity:
                    kind = StockIssueKind.INSUFFICIENT_STOCK
                else:
                    continue

            issues.append(StockIssue(
                item_id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_name=name,
                requested=item.quantity,
                available=available,
                issue=kind,
            ))

        if issues:
            logger.info(f"Stock validation for cart {cart.id} found {len(issues)} issue(s)")
        return StockValidationResult(valid=not issues, issues=issues)

    # =====================================================
    # COMMANDS
    # =====================================================
    @conflict_retry()
    def add_item(
        self,
        cart_id: UUID,
        product_id: str,
        quantity: int,
        variant_id: Optional[str] = None,
    ) -> CartItemView:
        """
        Adds a product (or one of its variants) to the cart.

        Re-adding the same product/variant increments the existing line and
        refreshes its price snapshot. The increment is one conditional
        UPDATE, so concurrent adds cannot push the line past the stock that
        was available when they were checked.
        """
        _require_quantity(quantity)
        if not product_id:
            raise CartValidationError("Product id is required", field="product_id")

        cart = self._get_mutable_cart(cart_id)
        cart_id = cart.id

        product, variant = self._resolve_reference(product_id, variant_id)
        available = pricing.available_quantity(product, variant)

        if quantity > available:
            raise InsufficientStockError(
                f"Insufficient stock for '{product.name}'. Only {available} available.",
                product_id=product_id,
                requested=quantity,
                available=available,
            )

        price = pricing.current_price(product, variant)
        now = self.clock()

        existing = self.repo.find_item(cart_id, product_id, variant_id)
        if existing is not None:
            item_id = existing.id
            if not self.repo.increment_item_quantity(item_id, quantity, available, price, now):
                self.repo.rollback()
                in_cart = self.repo.get_item_quantity(item_id)
                if in_cart is None:
                    raise CartConflictError("Cart item was removed concurrently")

                remaining = max(available - in_cart, 0)
                logger.warning(
                    f"Refused to add {quantity} of product {product_id} to cart {cart_id}: "
                    f"{in_cart} in cart, {available} in stock"
                )
                raise InsufficientStockError(
                    f"Cannot add {quantity} more of '{product.name}'. Only {remaining} more available.",
                    product_id=product_id,
                    requested=quantity,
                    available=remaining,
                )
            logger.info(f"Incremented product {product_id} in cart {cart_id} by {quantity}")
        else:
            try:
                item_id = self.repo.insert_item(cart_id, product_id, variant_id, quantity, price, now).id
            except IntegrityError:
                self.repo.rollback()
                logger.warning(f"Concurrent insert of product {product_id} into cart {cart_id}")
                raise CartConflictError("Cart was modified concurrently, try again")
            logger.info(f"Added product {product_id} x{quantity} to cart {cart_id}")

        self.repo.touch(cart_id, now)
        self.repo.commit()

        item = self.repo.get_item(cart_id, item_id)
        return self._reconcile(item, product, variant)

    def update_item_quantity(self, cart_id: UUID, item_id: UUID, quantity: int) -> CartItemView:
        """Replaces the quantity of a line. The price snapshot is left as it was."""
        _require_quantity(quantity)

        cart = self._get_mutable_cart(cart_id)
        cart_id = cart.id

        item = self.repo.get_item(cart_id, item_id)
        if item is None:
            raise CartNotFoundError("Cart item not found")

        product, variant = self._resolve_reference(item.product_id, item.variant_id)
        available = pricing.available_quantity(product, variant)

        if quantity > available:
            raise InsufficientStockError(
                f"Insufficient stock for '{product.name}'. Only {available} available.",
                product_id=item.product_id,
                requested=quantity,
                available=available,
            )

        now = self.clock()
        if not self.repo.set_item_quantity(cart_id, item_id, quantity, now):
            self.repo.rollback()
            raise CartNotFoundError("Cart item not found")

        self.repo.touch(cart_id, now)
        self.repo.commit()

        logger.info(f"Set quantity of item {item_id} in cart {cart_id} to {quantity}")

        item = self.repo.get_item(cart_id, item_id)
        return self._reconcile(item, product, variant)

    def remove_item(self, cart_id: UUID, item_id: UUID) -> CartView:
        cart = self._get_mutable_cart(cart_id)

        if not self.repo.delete_item(cart.id, item_id):
            raise CartNotFoundError("Cart item not found")

        self.repo.touch(cart.id, self.clock())
        self.repo.commit()

        logger.info(f"Removed item {item_id} from cart {cart.id}")
        return self._cart_view(cart)

    def clear_cart(self, cart_id: UUID) -> CartView:
        cart = self._get_mutable_cart(cart_id)

        removed = self.repo.delete_items(cart.id)
        self.repo.touch(cart.id, self.clock())
        self.repo.commit()

        logger.info(f"Cleared cart {cart.id} ({removed} line(s))")
        return self._cart_view(cart)

    def merge_carts(self, guest_token: str, account_id: int) -> CartView:
        """
        Folds the guest's cart into the account's cart after login.

        Lines present in both carts are summed onto the account line and the
        guest line is deleted; all other guest lines are re-owned as they
        are (same id). Stock is deliberately not checked here, so a login
        never fails on stock; validate_stock reports any over-capacity line
        before checkout. Everything happens in one transaction and the guest
        cart is marked abandoned last, so an interrupted merge can be re-run.
        """
        account = AccountOwner(account_id)
        try:
            guest = GuestOwner(guest_token)
        except CartValidationError:
            # a bad guest token must never block login
            logger.warning(f"Ignoring malformed guest token on merge into account {account_id}")
            return self.get_or_create(account)

        with self.lock_service.hold(merge_lock_key(guest.token)):
            now = self.clock()

            guest_cart = self.repo.find_active_cart(guest, now)
            if guest_cart is None:
                logger.info(f"No guest cart to merge into account {account_id}")
                return self.get_or_create(account)
            guest_cart_id = guest_cart.id

            account_cart = self.resolve_cart(account)
            account_cart_id = account_cart.id

            moved = combined = 0
            try:
                for guest_item in self.repo.get_items(guest_cart_id):
                    existing = self.repo.find_item(account_cart_id, guest_item.product_id, guest_item.variant_id)
                    if existing is not None:
                        self.repo.add_to_item_quantity(existing.id, guest_item.quantity, now)
                        self.repo.delete_item(guest_cart_id, guest_item.id)
                        combined += 1
                    else:
                        self.repo.move_item(guest_item.id, account_cart_id, now)
                        moved += 1

                self.repo.touch(account_cart_id, now)
                if not self.repo.transition_status(guest_cart_id, ACTIVE, ABANDONED, now):
                    raise CartConflictError("Guest cart changed during merge, try again")
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                logger.error(f"Merge of guest cart {guest_cart_id} into {account_cart_id} failed", exc_info=True)
                raise

            logger.info(
                f"Merged guest cart {guest_cart_id} into cart {account_cart_id} "
                f"of account {account_id}: {moved} moved, {combined} combined"
            )

            return self.get_cart(account_cart_id)

    def mark_cart_converted(self, cart_id: UUID) -> None:
        """Called once an order has been durably created from the cart."""
        if not self.repo.transition_status(cart_id, ACTIVE, CONVERTED, self.clock()):
            self.repo.rollback()
            raise CartNotFoundError("Active cart not found")

        self.repo.commit()
        logger.info(f"Cart {cart_id} converted")

    def cleanup_expired_carts(self) -> int:
        count = self.repo.expire_carts(self.clock())
        self.repo.commit()

        logger.info(f"Marked {count} expired cart(s) as abandoned")
        return count

    # =====================================================
    # HELPERS
    # =====================================================
    def resolve_cart(self, owner: CartOwner) -> CartModel:
        now = self.clock()

        cart = self.repo.find_active_cart(owner, now)
        if cart is not None:
            return cart

        try:
            if isinstance(owner, GuestOwner):
                # free the slot held by a lapsed cart the sweep has not reached yet
                self.repo.abandon_expired_guest_carts(owner.token, now)
            cart = self.repo.create_cart(owner, now, self.guest_ttl)
            self.repo.commit()
        except IntegrityError:
            # another request created it first
            self.repo.rollback()
            cart = self.repo.find_active_cart(owner, now)
            if cart is None:
                raise CartConflictError("Could not create cart, try again")
            return cart

        logger.info(f"Created cart {cart.id} for {_describe(owner)}")
        return cart

    def _get_mutable_cart(self, cart_id: UUID) -> CartModel:
        cart = self.repo.get_active_cart(cart_id)
        if cart is None:
            raise CartNotFoundError("Cart not found")
        return cart

    def _resolve_reference(
        self,
        product_id: str,
        variant_id: Optional[str],
    ) -> Tuple[CatalogProduct, Optional[CatalogVariant]]:
        product = self.catalog.get_product(product_id)
        if product is None or not product.is_available:
            raise InvalidReferenceError(f"Product {product_id} not found or unavailable")

        variant = None
        if variant_id is not None:
            variant = self.catalog.get_variant(variant_id)
            if variant is None or variant.product_id != product.id or not variant.is_active:
                raise InvalidReferenceError(f"Variant {variant_id} not found or unavailable")

        return product, variant

    def _load_catalog(self, item: CartItemModel) -> Tuple[Optional[CatalogProduct], Optional[CatalogVariant]]:
        product = self.catalog.get_product(item.product_id)
        if product is None or item.variant_id is None:
            return product, None

        variant = self.catalog.get_variant(item.variant_id)
        if variant is not None and variant.product_id != item.product_id:
            variant = None
        return product, variant

    def _reconcile(
        self,
        item: CartItemModel,
        product: Optional[CatalogProduct],
        variant: Optional[CatalogVariant],
    ) -> CartItemView:
        image = self.catalog.get_primary_image(item.product_id) if product else None
        return pricing.reconcile_item(item, product, variant, image)

    def _cart_view(self, cart: CartModel) -> CartView:
        lines = []
        for item in self.repo.get_items(cart.id):
            product, variant = self._load_catalog(item)
            lines.append(self._reconcile(item, product, variant))
        return pricing.build_cart_view(cart, lines)
