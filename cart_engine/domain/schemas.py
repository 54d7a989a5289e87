# cart_engine/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CartStatus(str, Enum):
    ACTIVE = "active"
    CONVERTED = "converted"
    ABANDONED = "abandoned"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class StockIssueKind(str, Enum):
    PRODUCT_UNAVAILABLE = "product_unavailable"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: str = Field(..., min_length=1, max_length=64, description="Catalog product id")
    variant_id: Optional[str] = Field(None, min_length=1, max_length=64, description="Catalog variant id")
    quantity: int = Field(1, gt=0, description="Quantity (must be > 0)")


class QuantityIn(BaseModel):
    """Schema for replacing the quantity of a cart line."""

    quantity: int = Field(..., gt=0, description="New quantity (must be > 0)")


class MergeIn(BaseModel):
    """Schema for merging a guest cart after login."""

    guest_id: Optional[str] = Field(None, min_length=1, max_length=64)


class ImageOut(BaseModel):
    url: str
    thumbnail_url: Optional[str] = None


class ProductOut(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    price: Decimal
    stock_quantity: int
    is_active: bool
    primary_image: Optional[ImageOut] = None


class VariantOut(BaseModel):
    id: str
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    stock_quantity: int
    options: Dict[str, str] = Field(default_factory=dict)
    is_active: bool


class CartItemView(BaseModel):
    """Cart line reconciled against the live catalog."""

    id: UUID
    product_id: str
    variant_id: Optional[str] = None
    quantity: int
    price_at_add: Decimal
    current_price: Decimal
    price_changed: bool
    line_total: Decimal
    available_quantity: int
    stock_status: StockStatus
    product: Optional[ProductOut] = None
    variant: Optional[VariantOut] = None


class CartView(BaseModel):
    """Cart with reconciled lines and totals. Never persisted."""

    id: UUID
    account_id: Optional[int] = None
    guest_token: Optional[str] = None
    status: CartStatus
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[CartItemView]
    item_count: int
    unique_item_count: int
    subtotal: Decimal
    has_price_changes: bool
    has_stock_issues: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartCount(BaseModel):
    item_count: int = 0
    unique_item_count: int = 0


class StockIssue(BaseModel):
    item_id: UUID
    product_id: str
    variant_id: Optional[str] = None
    product_name: str
    requested: int
    available: int
    issue: StockIssueKind


class StockValidationResult(BaseModel):
    valid: bool
    issues: List[StockIssue]
