#cart_engine/api/routers/carts.py
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.orm import Session

from cart_engine.api.identity import clear_guest_cookie, read_guest_token, require_account, resolve_cart_owner
from cart_engine.data.database import get_db
from cart_engine.domain.owner import AccountOwner, CartOwner
from cart_engine.domain.schemas import (
    CartCount,
    CartItemView,
    CartView,
    ItemIn,
    MergeIn,
    QuantityIn,
    StockValidationResult,
)
from cart_engine.services.cart_service import CartService
from cart_engine.services.catalog_client import HttpCatalogClient
from cart_engine.services.lock_service import LockService

router = APIRouter(prefix="/cart", tags=["cart"])


@lru_cache
def get_catalog_client() -> HttpCatalogClient:
    return HttpCatalogClient()


@lru_cache
def get_lock_service() -> LockService:
    return LockService()


def get_cart_service(
    db: Session = Depends(get_db),
    catalog: HttpCatalogClient = Depends(get_catalog_client),
    lock_service: LockService = Depends(get_lock_service),
) -> CartService:
    return CartService(db=db, catalog=catalog, lock_service=lock_service)


@router.get("", response_model=CartView)
def get_cart(
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_or_create(owner)


@router.get("/count", response_model=CartCount)
def get_cart_count(
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart_count(owner)


@router.get("/validate", response_model=StockValidationResult)
def validate_stock(
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.resolve_cart(owner)
    return svc.validate_stock(cart.id)


@router.post("/items", response_model=CartItemView, status_code=201)
def add_item(
    payload: ItemIn,
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.resolve_cart(owner)
    return svc.add_item(
        cart_id=cart.id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variant_id=payload.variant_id,
    )


@router.put("/items/{item_id}", response_model=CartItemView)
def update_item(
    item_id: UUID,
    payload: QuantityIn,
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.resolve_cart(owner)
    return svc.update_item_quantity(cart.id, item_id, payload.quantity)


@router.delete("/items/{item_id}", response_model=CartView)
def remove_item(
    item_id: UUID,
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.resolve_cart(owner)
    return svc.remove_item(cart.id, item_id)


@router.delete("", response_model=CartView)
def clear_cart(
    owner: CartOwner = Depends(resolve_cart_owner),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.resolve_cart(owner)
    return svc.clear_cart(cart.id)


@router.post("/merge", response_model=CartView)
def merge_carts(
    request: Request,
    response: Response,
    payload: Optional[MergeIn] = Body(None),
    account: AccountOwner = Depends(require_account),
    svc: CartService = Depends(get_cart_service),
):
    """
    Called right after login. The guest token comes from the body, or
    from the header/cookie the guest has been using.
    """
    guest_token = (payload.guest_id if payload else None) or read_guest_token(request)

    if guest_token:
        cart = svc.merge_carts(guest_token, account.account_id)
    else:
        cart = svc.get_or_create(account)

    clear_guest_cookie(response)
    return cart
