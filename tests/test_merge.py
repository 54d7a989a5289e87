# tests/test_merge.py
from decimal import Decimal

import pytest

from cart_engine.data.models import CartModel
from cart_engine.domain.exceptions import CartConflictError
from cart_engine.domain.owner import AccountOwner, GuestOwner
from cart_engine.domain.schemas import CartStatus, StockIssueKind


@pytest.fixture
def products(catalog):
    catalog.add_product("p1", price="100.00", stock=10)
    catalog.add_product("p2", price="25.00", stock=10)
    catalog.add_product("p3", price="5.00", stock=10)
    return catalog


def test_merge_sums_shared_lines_and_moves_the_rest(cart_service, products, db_session):
    guest = GuestOwner("guest-a")
    account = AccountOwner(42)

    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 2)
    moved_line = cart_service.add_item(guest_cart.id, "p2", 1)

    account_cart = cart_service.get_or_create(account)
    cart_service.add_item(account_cart.id, "p1", 3)
    cart_service.add_item(account_cart.id, "p3", 1)

    merged = cart_service.merge_carts(guest.token, account.account_id)

    quantities = {item.product_id: item.quantity for item in merged.items}
    assert merged.id == account_cart.id
    assert quantities == {"p1": 5, "p2": 1, "p3": 1}
    assert merged.item_count == 7

    # lines not already in the account cart keep their identity
    assert moved_line.id in {item.id for item in merged.items}

    assert db_session.get(CartModel, guest_cart.id).status == CartStatus.ABANDONED.value


def test_merge_into_account_without_cart_creates_one(cart_service, products):
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    line = cart_service.add_item(guest_cart.id, "p1", 2)

    merged = cart_service.merge_carts(guest.token, 42)

    assert merged.account_id == 42
    assert merged.id != guest_cart.id
    assert [(item.id, item.quantity) for item in merged.items] == [(line.id, 2)]


def test_merged_guest_cart_is_never_returned_for_that_token(cart_service, products):
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 2)

    cart_service.merge_carts(guest.token, 42)
    fresh = cart_service.get_or_create(guest)

    assert fresh.id != guest_cart.id
    assert fresh.items == []


def test_merge_without_guest_cart_is_a_no_op(cart_service, products):
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 1)

    merged = cart_service.merge_carts("unknown-guest", 42)

    assert merged.id == account_cart.id
    assert merged.item_count == 1


def test_running_merge_twice_does_not_double_quantities(cart_service, products):
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 2)
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 3)

    first = cart_service.merge_carts(guest.token, 42)
    second = cart_service.merge_carts(guest.token, 42)

    assert first.items[0].quantity == 5
    assert second.items[0].quantity == 5


def test_merge_does_not_check_stock(cart_service, products):
    # a login must never fail on stock; over-capacity lines surface in validate_stock
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 7)
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 6)

    merged = cart_service.merge_carts(guest.token, 42)

    assert merged.items[0].quantity == 13
    assert merged.has_stock_issues is True

    result = cart_service.validate_stock(merged.id)
    assert result.valid is False
    assert result.issues[0].issue == StockIssueKind.INSUFFICIENT_STOCK
    assert result.issues[0].available == 10


def test_merge_keeps_account_price_snapshot_for_shared_lines(cart_service, products, catalog):
    guest = GuestOwner("guest-a")
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 1)

    catalog.update_product("p1", price=Decimal("80.00"))
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 1)

    merged = cart_service.merge_carts(guest.token, 42)

    assert merged.items[0].price_at_add == Decimal("100.00")
    assert merged.items[0].current_price == Decimal("80.00")


def test_merge_runs_under_the_guest_lock(cart_service, products, lock_service):
    guest_cart = cart_service.get_or_create(GuestOwner("guest-a"))
    cart_service.add_item(guest_cart.id, "p1", 1)

    cart_service.merge_carts("guest-a", 42)

    lock_service.hold.assert_called_once_with("cart:merge:guest-a")
    lock_service.hold.return_value.__enter__.assert_called_once()
    lock_service.hold.return_value.__exit__.assert_called_once()


def test_merge_in_progress_is_a_conflict(cart_service, products, lock_service, db_session):
    guest_cart = cart_service.get_or_create(GuestOwner("guest-a"))
    cart_service.add_item(guest_cart.id, "p1", 1)
    lock_service.hold.side_effect = CartConflictError("busy")

    with pytest.raises(CartConflictError):
        cart_service.merge_carts("guest-a", 42)

    assert db_session.get(CartModel, guest_cart.id).status == CartStatus.ACTIVE.value


def test_failed_merge_leaves_both_carts_untouched(cart_service, products, mocker, db_session):
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 2)
    cart_service.add_item(guest_cart.id, "p2", 1)
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 3)

    mocker.patch.object(cart_service.repo, "transition_status", side_effect=RuntimeError("db went away"))

    with pytest.raises(RuntimeError):
        cart_service.merge_carts(guest.token, 42)

    guest_view = cart_service.get_cart(guest_cart.id)
    account_view = cart_service.get_cart(account_cart.id)
    assert guest_view.status == CartStatus.ACTIVE
    assert {i.product_id: i.quantity for i in guest_view.items} == {"p1": 2, "p2": 1}
    assert {i.product_id: i.quantity for i in account_view.items} == {"p1": 3}


def test_merge_rolls_back_when_guest_cart_is_no_longer_active(cart_service, products, mocker):
    guest = GuestOwner("guest-a")
    guest_cart = cart_service.get_or_create(guest)
    cart_service.add_item(guest_cart.id, "p1", 2)
    cart_service.add_item(guest_cart.id, "p2", 1)
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 3)

    mocker.patch.object(cart_service.repo, "transition_status", return_value=False)

    with pytest.raises(CartConflictError):
        cart_service.merge_carts(guest.token, 42)

    guest_view = cart_service.get_cart(guest_cart.id)
    account_view = cart_service.get_cart(account_cart.id)
    assert guest_view.status == CartStatus.ACTIVE
    assert {i.product_id: i.quantity for i in guest_view.items} == {"p1": 2, "p2": 1}
    assert {i.product_id: i.quantity for i in account_view.items} == {"p1": 3}


@pytest.mark.parametrize("guest_token", ["", "x" * 65])
def test_merge_with_malformed_guest_token_returns_account_cart(cart_service, products, lock_service, guest_token):
    account_cart = cart_service.get_or_create(AccountOwner(42))
    cart_service.add_item(account_cart.id, "p1", 1)

    merged = cart_service.merge_carts(guest_token, 42)

    assert merged.id == account_cart.id
    assert [(i.product_id, i.quantity) for i in merged.items] == [("p1", 1)]
    lock_service.hold.assert_not_called()
