"""Product and additionals catalogs."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from quote_sync.core.models import CatalogAdditional, Product
from quote_sync.interfaces.base import AdditionalsCatalog, CredentialProvider, ProductCatalog
from .errors import MissingCredentialError, PricingEngineError, UnauthorizedError

logger = logging.getLogger(__name__)

# Catalog entries are not uniform about where the display name lives.
_LABEL_KEYS = (
    "name",
    "title",
    "displayName",
    "productName",
    "product_name",
    "nombre",
    "Nombre",
    "description",
)
UNNAMED_PRODUCT = "Unnamed product"


def product_label(raw: Dict[str, Any]) -> str:
    for key in _LABEL_KEYS:
        value = raw.get(key)
        if value:
            return str(value)
    return UNNAMED_PRODUCT


def parse_products(payload: Any) -> List[Product]:
    """Extract active products from a catalog payload (list or wrapped list)."""
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict):
        entries = payload.get("items") or payload.get("data") or []
    else:
        entries = []

    products = [
        Product(id=str(entry.get("id")), display_name=product_label(entry), is_active=True)
        for entry in entries
        if isinstance(entry, dict) and entry.get("isActive") is True
    ]
    logger.info(f"Catalog: {len(products)} active products out of {len(entries)}")
    return products


def find_product(products: Iterable[Product], product_id: str) -> Optional[Product]:
    for product in products:
        if str(product.id) == str(product_id):
            return product
    return None


class HttpProductCatalog(ProductCatalog):
    """Reads the product list from ``GET {base}/products``."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        credentials: CredentialProvider,
    ):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials

    async def list_active_products(self) -> List[Product]:
        token = self._credentials.get_token()
        if not token:
            raise MissingCredentialError("No pricing session token available. Please sign in again.")

        url = f"{self._base_url}/products"
        try:
            async with self._session.get(
                url, headers={"Authorization": f"Bearer {token}", "Accept": "application/json"}
            ) as response:
                if response.status == 401:
                    raise UnauthorizedError("Pricing session expired while listing products")
                if response.status >= 400:
                    raise PricingEngineError(
                        f"Product catalog returned {response.status}", status=response.status
                    )
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise PricingEngineError(f"Product catalog request failed: {exc}") from exc

        return parse_products(payload)


class StaticAdditionalsCatalog(AdditionalsCatalog):
    """Read-only additionals reference data held in memory."""

    def __init__(self, additionals: Iterable[CatalogAdditional] = ()):
        self._additionals = sorted(additionals, key=lambda a: a.name)

    async def list_additionals(self) -> List[CatalogAdditional]:
        return list(self._additionals)
