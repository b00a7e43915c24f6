"""Contracts for the collaborators a line item talks to.

``PricingContext`` lives in ``quote_sync.interfaces.context``; it builds on
the shared HTTP clients and is imported from there.
"""

from .base import (
    AdditionalsCatalog,
    CredentialProvider,
    ParentAggregator,
    PricingTransport,
    ProductCatalog,
)

__all__ = [
    "AdditionalsCatalog",
    "CredentialProvider",
    "ParentAggregator",
    "PricingTransport",
    "ProductCatalog",
]
