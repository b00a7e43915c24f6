"""Abstract base classes for the collaborators a line item talks to."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from quote_sync.core.models import CatalogAdditional, Product


class PricingTransport(ABC):
    """Raw access to the remote pricing engine."""

    @abstractmethod
    async def fetch(
        self,
        product_id: str,
        token: str,
        inputs: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Run one pricing request.

        Args:
            product_id: Product to price
            token: Bearer credential
            inputs: ``[{id, value}]`` for a recompute, or None for a describe

        Returns:
            Decoded JSON body with ``prompts`` and ``outputValues``

        Raises:
            UnauthorizedError: If the engine refuses the credential
            PricingEngineError: For any other failure
        """
        pass


class ProductCatalog(ABC):
    @abstractmethod
    async def list_active_products(self) -> List[Product]:
        """Return the products that can be selected on a line item."""
        pass


class AdditionalsCatalog(ABC):
    @abstractmethod
    async def list_additionals(self) -> List[CatalogAdditional]:
        """Return the reference adjustments that can be attached to a line item."""
        pass


class CredentialProvider(ABC):
    """Supplies the bearer credential for pricing engine calls."""

    @abstractmethod
    def get_token(self) -> Optional[str]:
        """Return the current credential, or None when signed out."""
        pass

    async def refresh(self) -> Optional[str]:
        """Try to obtain a fresh credential; None when that is not possible."""
        return None

    def invalidate(self) -> None:
        """Forget the current credential after the engine refused it."""
        pass


class ParentAggregator(ABC):
    """The quote editor that owns a set of line items."""

    @abstractmethod
    def on_change(self, item_id: str, snapshot: Dict[str, Any]) -> None:
        """Receive a changed line-item snapshot."""
        pass

    @abstractmethod
    def on_remove(self, item_id: str) -> None:
        """Drop a line item."""
        pass

    @abstractmethod
    def on_finish_edit(self, item_id: str) -> None:
        """Leave editing mode for a line item."""
        pass
