"""In-memory quote that aggregates line-item snapshots."""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from quote_sync.interfaces.base import ParentAggregator
from .models import NET_AMOUNT, PERCENTAGE, QUANTITY_MULTIPLIER, Additional
from .outputs import parse_amount
from .snapshot import serialize_snapshot

logger = logging.getLogger(__name__)


def to_persisted_prompts(prompts: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Convert the list form of prompts to the id-keyed form stored with a quote."""
    persisted: Dict[str, Dict[str, Any]] = {}
    for prompt in prompts:
        persisted[prompt["id"]] = {
            "label": prompt.get("label"),
            "value": prompt.get("value"),
            "order": prompt.get("order"),
        }
    return persisted


class QuoteAggregator(ParentAggregator):
    """
    Parent of a set of line items.

    Keeps the last snapshot each item reported, which items are currently
    being edited, and a saved baseline for unsaved-change detection.
    """

    def __init__(self, items: Optional[Dict[str, Dict[str, Any]]] = None):
        self.items: Dict[str, Dict[str, Any]] = dict(items or {})
        self.editing: Set[str] = set()
        self._saved = self._serialize()

    def on_change(self, item_id: str, snapshot: Dict[str, Any]) -> None:
        stored = copy.deepcopy(snapshot)
        stored["prompts"] = to_persisted_prompts(snapshot.get("prompts") or [])
        self.items[item_id] = stored
        logger.debug(f"Quote item {item_id} updated (price={stored.get('price')})")

    def on_remove(self, item_id: str) -> None:
        self.items.pop(item_id, None)
        self.editing.discard(item_id)
        logger.info(f"Removed quote item {item_id}")

    def begin_edit(self, item_id: str) -> None:
        self.editing.add(item_id)

    def on_finish_edit(self, item_id: str) -> None:
        self.editing.discard(item_id)

    def subtotal(self) -> float:
        total = 0.0
        for item in self.items.values():
            price = parse_amount(item.get("price"))
            if price == price:
                total += price
        return total

    def total(self, quote_additionals: Iterable[Additional] = ()) -> float:
        """Subtotal with quote-level adjustments applied in order."""
        subtotal = self.subtotal()
        total = subtotal
        for additional in quote_additionals:
            if additional.type == NET_AMOUNT:
                total += additional.value
            elif additional.type == PERCENTAGE:
                total += subtotal * additional.value / 100
            elif additional.type == QUANTITY_MULTIPLIER:
                total *= additional.value
            else:
                logger.warning(f"Unknown adjustment type {additional.type!r}; adding its value")
                total += additional.value
        return total

    def ordered_items(self) -> List[Dict[str, Any]]:
        return [self.items[key] for key in sorted(self.items)]

    def has_unsaved_changes(self) -> bool:
        return self._serialize() != self._saved

    def mark_saved(self) -> None:
        self._saved = self._serialize()

    def _serialize(self) -> str:
        return serialize_snapshot(self.items)
