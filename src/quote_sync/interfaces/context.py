"""Execution context for pricing engine operations."""

from typing import Optional

import aiohttp

from quote_sync.core.config import get_pricing_api_url, get_pricing_token, get_request_timeout
from quote_sync.core.session import InMemoryTokenStore
from quote_sync.shared.catalog import HttpProductCatalog
from quote_sync.shared.http_transport import HttpPricingTransport
from quote_sync.shared.pricing_client import RemotePricingClient, UnauthorizedNotifier


class PricingContext:
    """
    Owns the HTTP session and the clients built on top of it.

    Can be used as an async context manager to ensure proper resource cleanup.
    """

    def __init__(
        self,
        token_store: Optional[InMemoryTokenStore] = None,
        base_url: Optional[str] = None,
        on_unauthorized: Optional[UnauthorizedNotifier] = None,
    ):
        """
        Initialize the context.

        Args:
            token_store: Optional credential store. If not provided, one is
                created from PRICING_API_TOKEN.
            base_url: Pricing engine base URL (defaults to PRICING_API_URL)
            on_unauthorized: Called with (status, source) when a session expires
        """
        self.token_store = token_store
        self.base_url = base_url
        self.client: Optional[RemotePricingClient] = None
        self.catalog: Optional[HttpProductCatalog] = None
        self._on_unauthorized = on_unauthorized
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "PricingContext":
        """
        Open the HTTP session and build the pricing clients.

        Raises:
            ConfigurationError: If no token store was given and PRICING_API_TOKEN is unset.
        """
        if self.token_store is None:
            self.token_store = InMemoryTokenStore(get_pricing_token())
        base_url = self.base_url or get_pricing_api_url()

        self._session = aiohttp.ClientSession()
        transport = HttpPricingTransport(self._session, base_url, timeout=get_request_timeout())
        self.client = RemotePricingClient(transport, self.token_store, self._on_unauthorized)
        self.catalog = HttpProductCatalog(self._session, base_url, self.token_store)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def validate(self) -> bool:
        """Check if context is properly initialized."""
        return self.client is not None and self.catalog is not None
