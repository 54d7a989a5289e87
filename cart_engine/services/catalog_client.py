# cart_engine/services/catalog_client.py
from typing import Optional, Protocol
from urllib.parse import quote

import requests

from cart_engine.domain.catalog import CatalogImage, CatalogProduct, CatalogVariant
from cart_engine.utils.retry import http_retry
from cart_engine.utils.settings import CATALOG_SERVICE_URL, CATALOG_TIMEOUT_SECONDS
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogClient(Protocol):
    """Read-only view of the product catalog used by the cart engine."""

    def get_product(self, product_id: str) -> Optional[CatalogProduct]: ...

    def get_variant(self, variant_id: str) -> Optional[CatalogVariant]: ...

    def get_primary_image(self, product_id: str) -> Optional[CatalogImage]: ...


class HttpCatalogClient:
    """Catalog lookups against the catalog service. 404 means "does not exist"."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout or CATALOG_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    @http_retry()
    def _get(self, path: str) -> dict | None:
        url = f"{self.base_url}{path}"
        logger.info(f"CatalogClient GET {url}")

        resp = self.http.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        data = self._get(f"/products/{quote(str(product_id), safe='')}")
        return CatalogProduct.model_validate(data) if data else None

    def get_variant(self, variant_id: str) -> Optional[CatalogVariant]:
        data = self._get(f"/variants/{quote(str(variant_id), safe='')}")
        return CatalogVariant.model_validate(data) if data else None

    def get_primary_image(self, product_id: str) -> Optional[CatalogImage]:
        data = self._get(f"/products/{quote(str(product_id), safe='')}/primary-image")
        return CatalogImage.model_validate(data) if data else None
