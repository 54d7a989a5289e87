"""
Read-time pricing and stock reconciliation.

Stored cart lines only carry a price snapshot. Everything a caller sees
(current price, line totals, stock status, cart totals) is recomputed
here from the live catalog on every read. No I/O happens in this module.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from cart_engine.data.models.cart import CartModel
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.domain.catalog import CatalogImage, CatalogProduct, CatalogVariant
from cart_engine.domain.schemas import (
    CartItemView,
    CartStatus,
    CartView,
    ImageOut,
    ProductOut,
    StockStatus,
    VariantOut,
)
from cart_engine.utils.settings import LOW_STOCK_THRESHOLD

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def current_price(product: CatalogProduct, variant: Optional[CatalogVariant] = None) -> Decimal:
    if variant is not None and variant.price is not None:
        return money(variant.price)
    return money(product.price)


def available_quantity(product: CatalogProduct, variant: Optional[CatalogVariant] = None) -> int:
    if variant is not None:
        return variant.stock_quantity
    return product.stock_quantity


def is_sellable(product: CatalogProduct, variant: Optional[CatalogVariant] = None) -> bool:
    if not product.is_available:
        return False
    if variant is not None and not variant.is_active:
        return False
    return True


def stock_status(available: int, requested: int, sellable: bool = True,
                 threshold: int = LOW_STOCK_THRESHOLD) -> StockStatus:
    if available <= 0 or not sellable:
        return StockStatus.OUT_OF_STOCK
    if available < requested or available <= threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def line_total(price: Decimal, quantity: int) -> Decimal:
    return money(price * quantity)


def _product_out(product: CatalogProduct, image: Optional[CatalogImage]) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        slug=product.slug,
        price=money(product.price),
        stock_quantity=product.stock_quantity,
        is_active=product.is_available,
        primary_image=ImageOut(url=image.url, thumbnail_url=image.thumbnail_url) if image else None,
    )


def _variant_out(variant: CatalogVariant) -> VariantOut:
    return VariantOut(
        id=variant.id,
        sku=variant.sku,
        price=money(variant.price) if variant.price is not None else None,
        stock_quantity=variant.stock_quantity,
        options=variant.options,
        is_active=variant.is_active,
    )


def reconcile_item(
    item: CartItemModel,
    product: Optional[CatalogProduct],
    variant: Optional[CatalogVariant] = None,
    image: Optional[CatalogImage] = None,
) -> CartItemView:
    snapshot = money(item.price_at_add)

    # product gone from the catalog: nothing live to price against
    if product is None:
        return CartItemView(
            id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            price_at_add=snapshot,
            current_price=snapshot,
            price_changed=False,
            line_total=line_total(snapshot, item.quantity),
            available_quantity=0,
            stock_status=StockStatus.OUT_OF_STOCK,
        )

    # a variant that no longer exists cannot be sold
    variant_missing = item.variant_id is not None and variant is None
    price = current_price(product, variant)
    available = 0 if variant_missing else available_quantity(product, variant)
    sellable = not variant_missing and is_sellable(product, variant)

    return CartItemView(
        id=item.id,
        product_id=item.product_id,
        variant_id=item.variant_id,
        quantity=item.quantity,
        price_at_add=snapshot,
        current_price=price,
        price_changed=snapshot != price,
        line_total=line_total(price, item.quantity),
        available_quantity=available,
        stock_status=stock_status(available, item.quantity, sellable),
        product=_product_out(product, image),
        variant=_variant_out(variant) if variant is not None else None,
    )


def has_stock_issue(line: CartItemView) -> bool:
    return line.stock_status == StockStatus.OUT_OF_STOCK or line.available_quantity < line.quantity


def build_cart_view(cart: CartModel, lines: Iterable[CartItemView]) -> CartView:
    lines: List[CartItemView] = list(lines)

    return CartView(
        id=cart.id,
        account_id=cart.account_id,
        guest_token=cart.guest_token,
        status=CartStatus(cart.status),
        expires_at=cart.expires_at,
        notes=cart.notes,
        items=lines,
        item_count=sum(line.quantity for line in lines),
        unique_item_count=len(lines),
        subtotal=money(sum((line.line_total for line in lines), ZERO)),
        has_price_changes=any(line.price_changed for line in lines),
        has_stock_issues=any(has_stock_issue(line) for line in lines),
        created_at=cart.created_at,
        updated_at=cart.updated_at,
    )
