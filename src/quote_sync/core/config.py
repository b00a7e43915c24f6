"""Shared configuration helpers for quote-sync."""

import os
from typing import Optional

from dotenv import load_dotenv

from quote_sync.shared.errors import ConfigurationError

DEFAULT_PRICING_API_URL = "https://api.easyquote.cloud/api/v1"
DEFAULT_DEBOUNCE_MS = 350
DEFAULT_MAX_QUANTITIES = 10
DEFAULT_REQUEST_TIMEOUT = 30.0


def load_environment() -> None:
    """Load environment variables from .env if present."""
    load_dotenv()


def get_pricing_api_url() -> str:
    """Return the pricing engine base URL with a sensible default."""
    return os.getenv("PRICING_API_URL", DEFAULT_PRICING_API_URL).rstrip("/")


def get_pricing_token() -> str:
    """Return the pricing engine bearer token or raise if missing."""
    token = os.getenv("PRICING_API_TOKEN")
    if not token:
        raise ConfigurationError(
            "PRICING_API_TOKEN is not set. Sign in to the pricing engine and export the token."
        )
    return token


def get_debounce_seconds() -> float:
    """Return the quiescence window applied to parameter edits, in seconds."""
    return _get_int("PRICING_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS) / 1000.0


def get_max_quantities() -> int:
    """
    Return the maximum number of quantity slots in multi-quantity mode.

    Values below 1 fall back to the default.
    """
    value = _get_int("PRICING_MAX_QUANTITIES", DEFAULT_MAX_QUANTITIES)
    return value if value >= 1 else DEFAULT_MAX_QUANTITIES


def get_request_timeout() -> float:
    """Return the HTTP timeout for pricing engine calls, in seconds."""
    try:
        return float(os.getenv("PRICING_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
    except ValueError:
        return DEFAULT_REQUEST_TIMEOUT


def _get_int(name: str, default: int) -> int:
    raw: Optional[str] = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default
