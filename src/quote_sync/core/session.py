"""Credential storage for pricing engine sessions."""

import logging
from typing import Awaitable, Callable, Optional

from quote_sync.interfaces.base import CredentialProvider

logger = logging.getLogger(__name__)

TokenRefresher = Callable[[], Awaitable[Optional[str]]]


class InMemoryTokenStore(CredentialProvider):
    """Lightweight in-memory credential holder (one per signed-in session)."""

    def __init__(self, token: Optional[str] = None, refresher: Optional[TokenRefresher] = None):
        """
        Initialize the store.

        Args:
            token: Initial bearer token, if already signed in
            refresher: Optional coroutine function that re-authenticates and
                returns a new token (or None when it cannot)
        """
        self._token = token
        self._refresher = refresher

    def get_token(self) -> Optional[str]:
        """Return the current token, if present."""
        return self._token

    def set(self, token: str) -> None:
        """Store a freshly issued token."""
        self._token = token

    def invalidate(self) -> None:
        """Forget the token after the pricing engine refused it."""
        self._token = None

    async def refresh(self) -> Optional[str]:
        """Re-authenticate through the refresher and keep the new token."""
        if self._refresher is None:
            return None
        token = await self._refresher()
        if token:
            logger.info("Pricing session token refreshed")
            self._token = token
        return token
