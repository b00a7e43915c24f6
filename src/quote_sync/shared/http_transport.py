"""aiohttp transport for the hosted pricing engine."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from quote_sync.interfaces.base import PricingTransport
from .errors import PricingEngineError, UnauthorizedError

logger = logging.getLogger(__name__)

UNAUTHORIZED_CODE = "EASYQUOTE_UNAUTHORIZED"


def _is_unauthorized_body(body: Any) -> bool:
    return isinstance(body, dict) and (
        body.get("status") == 401 or body.get("code") == UNAUTHORIZED_CODE
    )


class HttpPricingTransport(PricingTransport):
    """
    Pricing engine over HTTP.

    Describe is ``GET {base}/pricing/{product_id}``; recompute is
    ``PATCH {base}/pricing/{product_id}`` with a ``[{id, value}]`` body.
    """

    def __init__(self, session: aiohttp.ClientSession, base_url: str, timeout: float = 30.0):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch(
        self,
        product_id: str,
        token: str,
        inputs: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        url = f"{self._base_url}/pricing/{product_id}"
        method = "GET" if inputs is None else "PATCH"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with self._session.request(
                method, url, headers=headers, json=inputs, timeout=self._timeout
            ) as response:
                status = response.status
                text = await response.text()
        except UnicodeDecodeError as exc:
            if status == 401:
                raise UnauthorizedError() from exc
            raise PricingEngineError(
                f"Undecodable pricing {method} response for {product_id}", status=status
            ) from exc
        except asyncio.TimeoutError as exc:
            raise PricingEngineError(f"Pricing {method} timed out for {product_id}") from exc
        except aiohttp.ClientError as exc:
            raise PricingEngineError(f"Pricing {method} failed for {product_id}: {exc}") from exc

        if status == 401:
            raise UnauthorizedError()

        try:
            body = json.loads(text) if text else {}
        except json.JSONDecodeError as exc:
            logger.error(f"Invalid JSON from pricing engine ({status}): {text[:200]}")
            raise PricingEngineError("Invalid response from pricing engine", status=status) from exc

        if _is_unauthorized_body(body):
            raise UnauthorizedError()

        if status >= 400:
            message = body.get("message") or body.get("error") if isinstance(body, dict) else None
            raise PricingEngineError(
                f"Pricing {method} {status}: {message or 'request rejected'}", status=status
            )

        return body
