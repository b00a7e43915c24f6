"""Helpers for classifying and reading pricing engine outputs."""

import math
import re
from typing import Any, List, Optional

from .models import Output

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
NOT_AVAILABLE = "#N/A"


def parse_amount(value: Any) -> float:
    """
    Read a monetary amount as a float.

    Strings containing a comma use the European form ("1.234,56"); other
    strings are plain decimals. Unparsable input yields NaN.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return math.nan

    text = str(value).strip().replace("€", "").replace(" ", "")
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return math.nan


def find_price_output(outputs: List[Output]) -> Optional[Output]:
    """Return the first output tagged as the price, if any."""
    for output in outputs:
        if output.type.lower() == "price":
            return output
    return None


def find_batch_price_output(outputs: List[Output]) -> Optional[Output]:
    """Price lookup for batch rows, which also accepts price-like names."""
    for output in outputs:
        name = output.name.lower()
        if output.type.lower() == "price" or "precio" in name or "price" in name:
            return output
    return None


def _is_image_like(output: Output) -> bool:
    return "image" in output.type.lower() or "image" in output.name.lower()


def other_outputs(outputs: List[Output]) -> List[Output]:
    """Outputs worth displaying besides the price."""
    price = find_price_output(outputs)
    result = []
    for output in outputs:
        if output is price or _is_image_like(output):
            continue
        text = "" if output.value is None else str(output.value)
        if text == "" or text == NOT_AVAILABLE:
            continue
        result.append(output)
    return result


def image_outputs(outputs: List[Output]) -> List[Output]:
    return [output for output in outputs if _URL_PATTERN.match(str(output.value or ""))]
