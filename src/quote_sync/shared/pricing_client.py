"""Remote pricing client: request shapes, input normalization, auth policy."""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from quote_sync.core.models import PricingResponse
from quote_sync.interfaces.base import CredentialProvider, PricingTransport
from .errors import MissingCredentialError, UnauthorizedError
from .metrics import increment_errors, increment_pricing_requests

logger = logging.getLogger(__name__)

UnauthorizedNotifier = Callable[[int, str], None]

_HEX_WITH_HASH = re.compile(r"^#[0-9a-f]{6}$", re.IGNORECASE)
_HEX_BARE = re.compile(r"^(?=.*[a-f])[0-9a-f]{6}$", re.IGNORECASE)
_NUMERIC = re.compile(r"^-?\d+([.,]\d+)?$")


def normalize_value(value: Any) -> Any:
    """
    Normalize one parameter value for the pricing engine.

    Returns None for values that must be omitted from the request.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value

    trimmed = value.strip()
    if not trimmed:
        return None
    if _HEX_WITH_HASH.match(trimmed) or _HEX_BARE.match(trimmed):
        return trimmed.lstrip("#").upper()
    if _NUMERIC.match(trimmed):
        text = trimmed.replace(",", ".")
        return float(text) if "." in text else int(text)
    return trimmed


def normalize_inputs(values: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Build the ``[{id, value}]`` recompute body, preserving key order."""
    inputs = []
    for param_id, value in values.items():
        normalized = normalize_value(value)
        if normalized is None:
            continue
        inputs.append({"id": param_id, "value": normalized})
    return inputs


def _log_unauthorized(status: int, source: str) -> None:
    logger.warning(f"Pricing session rejected ({status}) by {source}")


class RemotePricingClient:
    """
    Issue describe/recompute requests against the pricing engine.

    The credential comes from an injected provider. A refused credential is
    refreshed once; if that fails the credential is invalidated, the
    unauthorized notifier fires and the error is re-raised.
    """

    def __init__(
        self,
        transport: PricingTransport,
        credentials: CredentialProvider,
        on_unauthorized: Optional[UnauthorizedNotifier] = None,
    ):
        self._transport = transport
        self._credentials = credentials
        self._on_unauthorized = on_unauthorized or _log_unauthorized

    async def describe(self, product_id: str) -> PricingResponse:
        """Fetch parameter definitions and defaults, sending no input."""
        return await self._request(product_id, None)

    async def recompute(self, product_id: str, values: Dict[str, Any]) -> PricingResponse:
        """Price the product for the given ``{parameter_id: value}`` mapping."""
        return await self._request(product_id, normalize_inputs(values))

    async def _request(
        self, product_id: str, inputs: Optional[List[Dict[str, Any]]]
    ) -> PricingResponse:
        token = self._credentials.get_token()
        if not token:
            raise MissingCredentialError(
                "No pricing session token available. Please sign in again."
            )

        shape = "describe" if inputs is None else "recompute"
        increment_pricing_requests(shape, product_id)
        logger.debug(f"Pricing {shape} for product {product_id} with {len(inputs or [])} input(s)")

        try:
            raw = await self._transport.fetch(product_id, token, inputs)
        except UnauthorizedError as exc:
            refreshed = await self._credentials.refresh()
            if not refreshed:
                self._session_expired(exc, product_id)
                raise
            logger.info(f"Retrying pricing {shape} for {product_id} with refreshed credential")
            try:
                raw = await self._transport.fetch(product_id, refreshed, inputs)
            except UnauthorizedError as retry_exc:
                self._session_expired(retry_exc, product_id)
                raise

        return PricingResponse.from_dict(raw)

    def _session_expired(self, exc: UnauthorizedError, product_id: str) -> None:
        increment_errors("unauthorized")
        self._credentials.invalidate()
        self._on_unauthorized(exc.status or 401, f"pricing/{product_id}")
