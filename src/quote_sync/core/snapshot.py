"""Canonical line-item snapshots and change-only delivery to the parent."""

import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from quote_sync.interfaces.base import ParentAggregator
from quote_sync.shared.metrics import increment_snapshot_emissions
from .models import NET_AMOUNT, QUANTITY_MULTIPLIER, Additional, BatchRow, LineItemSnapshot, Output
from .outputs import parse_amount

logger = logging.getLogger(__name__)


def compute_final_price(
    price_output: Optional[Output],
    additionals: Iterable[Additional],
    rows: List[BatchRow],
    multi_enabled: bool,
) -> float:
    """
    Base price plus item adjustments.

    ``net_amount`` adds its value once; ``quantity_multiplier`` adds its
    value per unit, where units are the summed batch quantities when
    multi-quantity rows exist and 1 otherwise.
    """
    base = parse_amount(price_output.value) if price_output else 0.0
    if math.isnan(base):
        base = 0.0

    quantity = sum(row.qty for row in rows) if multi_enabled and rows else 1
    adjustments = 0.0
    for additional in additionals:
        if additional.type == NET_AMOUNT:
            adjustments += additional.value
        elif additional.type == QUANTITY_MULTIPLIER:
            adjustments += additional.value * quantity
    return base + adjustments


def serialize_snapshot(payload: Dict[str, Any]) -> str:
    """Deterministic text form used for by-value comparison."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


class SnapshotEmitter:
    """Notify the parent only when the snapshot content actually changed."""

    def __init__(self, item_id: str, parent: Optional[ParentAggregator]):
        self.item_id = item_id
        self._parent = parent
        self._last_serialized: Optional[str] = None

    @property
    def last_serialized(self) -> Optional[str]:
        return self._last_serialized

    def prime(self, snapshot: LineItemSnapshot) -> None:
        """Record a snapshot the parent already holds, without notifying it."""
        self._last_serialized = serialize_snapshot(snapshot.to_dict())

    def emit(
        self,
        snapshot: LineItemSnapshot,
        *,
        initializing: bool = False,
        fetch_in_flight: bool = False,
        custom: bool = False,
    ) -> bool:
        """Deliver the snapshot unless suppressed or unchanged. Returns True if delivered."""
        if initializing or fetch_in_flight:
            return False
        if not custom and not snapshot.prompts:
            return False

        payload = snapshot.to_dict()
        serialized = serialize_snapshot(payload)
        if serialized == self._last_serialized:
            return False

        self._last_serialized = serialized
        if self._parent is not None:
            self._parent.on_change(self.item_id, payload)
        increment_snapshot_emissions(self.item_id)
        logger.debug(f"Emitted snapshot for item {self.item_id} (price={snapshot.price})")
        return True
