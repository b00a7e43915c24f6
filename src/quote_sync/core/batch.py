"""Multi-quantity pricing: one recompute per quantity, priced in parallel."""

import asyncio
import logging
import math
import re
from typing import Any, Dict, List, Optional, Union

from quote_sync.shared.errors import BatchQuantityError, QuoteSyncError
from .models import BatchRow, MultiQuantity, Output
from .outputs import find_batch_price_output, parse_amount

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT = 5

Quantity = Union[int, float]

_PARAMETER_NUMBER = re.compile(r"^-?\d+([.,]\d+)?$")


def parse_quantity(text: Any) -> Optional[Quantity]:
    """
    Read a quantity slot. Dots are thousands separators, commas decimals.

    Empty or unparsable slots yield None.
    """
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return None if math.isnan(text) else text
    if text is None:
        return None

    cleaned = str(text).strip().replace(".", "").replace(",", ".")
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number) if number.is_integer() else number


def format_quantity(value: Any) -> str:
    """
    Render a quantity parameter value as slot text.

    Parameter values use a single dot or comma as the decimal mark, slot text
    uses dots for thousands, so fractions are written with a comma.
    """
    if isinstance(value, str):
        trimmed = value.strip()
        if not _PARAMETER_NUMBER.match(trimmed):
            return trimmed
        value = float(trimmed.replace(",", "."))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).replace(".", ",")


def compute_unit_price(total_price: float, qty: Quantity) -> float:
    """Total divided by quantity; NaN instead of a division error."""
    if qty <= 0 or math.isnan(total_price):
        return math.nan
    return total_price / qty


def build_row(qty: Quantity, outputs: List[Output]) -> BatchRow:
    price_output = find_batch_price_output(outputs)
    total = parse_amount(price_output.value) if price_output else math.nan
    return BatchRow(
        qty=qty,
        outputs=list(outputs),
        total_price=total,
        unit_price=compute_unit_price(total, qty),
    )


class MultiQuantityConfig:
    """
    User configuration of multi-quantity mode.

    Slot 0 mirrors the live value of the quantity parameter and cannot be
    edited directly; the remaining slots are free-form.
    """

    def __init__(self, max_quantities: int = 10):
        self.max_quantities = max_quantities
        self.enabled = False
        self.qty_prompt = ""
        self.qty_inputs: List[str] = [""] * min(DEFAULT_SLOT_COUNT, max_quantities)

    @property
    def count(self) -> int:
        return len(self.qty_inputs)

    @property
    def is_active(self) -> bool:
        return (
            self.enabled
            and bool(self.qty_prompt)
            and any(str(q).strip() for q in self.qty_inputs)
        )

    def set_count(self, count: int) -> None:
        count = max(1, min(self.max_quantities, int(count)))
        if count > len(self.qty_inputs):
            self.qty_inputs = self.qty_inputs + [""] * (count - len(self.qty_inputs))
        else:
            self.qty_inputs = self.qty_inputs[:count]

    def set_input(self, index: int, value: Any) -> None:
        if index == 0:
            raise ValueError("Quantity #1 mirrors the quantity parameter and is read-only")
        if not 0 < index < len(self.qty_inputs):
            raise IndexError(f"Quantity slot {index + 1} is out of range (1..{len(self.qty_inputs)})")
        self.qty_inputs[index] = "" if value is None else str(value)

    def load(self, qty_prompt: str, qty_inputs: List[str]) -> None:
        self.enabled = True
        self.qty_prompt = qty_prompt
        if qty_inputs:
            self.qty_inputs = list(qty_inputs[: self.max_quantities])

    def sync_first(self, value: Any) -> bool:
        """Mirror the live quantity value into slot 0. Returns True on change."""
        if not self.enabled or value is None or str(value) == "":
            return False
        text = format_quantity(value)
        if self.qty_inputs[0] == text:
            return False
        self.qty_inputs[0] = text
        return True

    def quantities(self) -> List[Quantity]:
        parsed = (parse_quantity(q) for q in self.qty_inputs[: self.max_quantities])
        return [q for q in parsed if q is not None]

    def reset(self) -> None:
        self.enabled = False
        self.qty_prompt = ""
        self.qty_inputs = [""] * min(DEFAULT_SLOT_COUNT, self.max_quantities)

    def to_snapshot(self, rows: List[BatchRow]) -> Optional[MultiQuantity]:
        if not self.enabled:
            return None
        return MultiQuantity(qty_prompt=self.qty_prompt, qty_inputs=list(self.qty_inputs), rows=rows)


class BatchQuantityEngine:
    """Fan out one recompute per quantity and assemble the rows."""

    def __init__(self, client):
        self._client = client

    async def run(
        self,
        product_id: str,
        values: Dict[str, Any],
        qty_prompt: str,
        quantities: List[Quantity],
    ) -> List[BatchRow]:
        """
        Price every quantity with all other parameters held fixed.

        Raises:
            BatchQuantityError: If any single request fails; no partial rows
        """
        if not quantities:
            return []

        async def price_one(qty: Quantity) -> BatchRow:
            substituted = {key: value for key, value in values.items() if key != qty_prompt}
            substituted[qty_prompt] = qty
            response = await self._client.recompute(product_id, substituted)
            return build_row(qty, response.outputs)

        try:
            rows = await asyncio.gather(*(price_one(qty) for qty in quantities))
        except QuoteSyncError as exc:
            raise BatchQuantityError(f"Multi-quantity pricing failed: {exc}") from exc

        logger.info(f"Priced {len(rows)} quantities for product {product_id}")
        return list(rows)
