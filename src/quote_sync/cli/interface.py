"""CLI parent aggregator for a single-item console quote."""

import logging
from typing import Any, Dict

from quote_sync.core.quote import QuoteAggregator

# Get logger (setup handled by application entry point)
logger = logging.getLogger(__name__)


class ConsoleAggregator(QuoteAggregator):
    """Quote aggregator that also counts the snapshots it receives."""

    def __init__(self):
        super().__init__()
        self.change_count = 0
        self.finished = False

    def on_change(self, item_id: str, snapshot: Dict[str, Any]) -> None:
        super().on_change(item_id, snapshot)
        self.change_count += 1
        logger.debug(f"Console quote received snapshot #{self.change_count} for {item_id}")

    def on_finish_edit(self, item_id: str) -> None:
        super().on_finish_edit(item_id)
        self.finished = True
