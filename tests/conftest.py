# tests/conftest.py
import os

# must be set before cart_engine.utils.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cart_engine.api import create_app
from cart_engine.api.routers.carts import get_catalog_client, get_lock_service
from cart_engine.data.database import Base, get_db
from cart_engine.data.models import CartModel, CartItemModel  # noqa: F401
from cart_engine.domain.catalog import CatalogImage, CatalogProduct, CatalogVariant
from cart_engine.domain.owner import AccountOwner, GuestOwner
from cart_engine.services.cart_service import CartService

# in-memory SQLite shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeCatalog:
    """In-memory catalog with the same lookups as HttpCatalogClient."""

    def __init__(self):
        self.products = {}
        self.variants = {}
        self.images = {}

    def add_product(self, product_id, price="100.00", stock=10, name=None, is_active=True, deleted_at=None):
        product = CatalogProduct(
            id=product_id,
            name=name or product_id.title(),
            slug=product_id,
            price=Decimal(price),
            stock_quantity=stock,
            is_active=is_active,
            deleted_at=deleted_at,
        )
        self.products[product_id] = product
        return product

    def add_variant(self, variant_id, product_id, price=None, stock=10, is_active=True, options=None):
        variant = CatalogVariant(
            id=variant_id,
            product_id=product_id,
            sku=variant_id.upper(),
            price=Decimal(price) if price is not None else None,
            stock_quantity=stock,
            options=options or {},
            is_active=is_active,
        )
        self.variants[variant_id] = variant
        return variant

    def add_image(self, product_id, url, thumbnail_url=None):
        self.images[product_id] = CatalogImage(url=url, thumbnail_url=thumbnail_url)

    def update_product(self, product_id, **changes):
        self.products[product_id] = self.products[product_id].model_copy(update=changes)

    def update_variant(self, variant_id, **changes):
        self.variants[variant_id] = self.variants[variant_id].model_copy(update=changes)

    def get_product(self, product_id):
        return self.products.get(product_id)

    def get_variant(self, variant_id):
        return self.variants.get(variant_id)

    def get_primary_image(self, product_id):
        return self.images.get(product_id)


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Clean schema for every test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def lock_service() -> MagicMock:
    # MagicMock supports the context manager protocol, so hold() just works
    return MagicMock()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def cart_service(db_session, catalog, lock_service, clock) -> CartService:
    return CartService(db_session, catalog=catalog, lock_service=lock_service, clock=clock)


@pytest.fixture
def guest() -> GuestOwner:
    return GuestOwner("guest-token-1")


@pytest.fixture
def account() -> AccountOwner:
    return AccountOwner(42)


@pytest.fixture
def guest_cart(cart_service, guest):
    return cart_service.get_or_create(guest)


@pytest.fixture
def test_client(db_session, catalog, lock_service) -> TestClient:
    app = create_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog_client] = lambda: catalog
    app.dependency_overrides[get_lock_service] = lambda: lock_service

    with TestClient(app) as client:
        yield client
