# cart_engine/domain/catalog.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CatalogProduct(BaseModel):
    """Product as served by the catalog service. Read-only for the cart."""

    id: str
    name: str
    slug: Optional[str] = None
    price: Decimal
    stock_quantity: int = Field(..., ge=0)
    is_active: bool = True
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_available(self) -> bool:
        return self.is_active and self.deleted_at is None


class CatalogVariant(BaseModel):
    """Product variant. A missing price means the product price applies."""

    id: str
    product_id: str
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    stock_quantity: int = Field(..., ge=0)
    options: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class CatalogImage(BaseModel):
    url: str
    thumbnail_url: Optional[str] = None
