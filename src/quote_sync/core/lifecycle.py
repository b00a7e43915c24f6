"""Lifecycle of a line item and the request shape it calls for."""

from enum import Enum
from typing import Optional


class Lifecycle(str, Enum):
    NEW = "new"  # no saved configuration
    LOADED = "loaded"  # restored from persisted data, untouched
    EDITED = "edited"  # user changed something, or defaults were accepted


class RequestShape(str, Enum):
    DESCRIBE = "describe"
    RECOMPUTE = "recompute"


class LifecycleClassifier:
    """
    Track the item lifecycle and pick describe vs. recompute.

    Loaded values are authoritative: a loaded item is never described, so
    remote defaults cannot overwrite its saved configuration. Only new items
    accept defaults.
    """

    def __init__(self) -> None:
        self.state = Lifecycle.NEW
        self._loaded_pass_done = False

    def reset(self) -> None:
        self.state = Lifecycle.NEW
        self._loaded_pass_done = False

    def mark_loaded(self) -> None:
        self.state = Lifecycle.LOADED
        self._loaded_pass_done = False

    def mark_edited(self) -> None:
        self.state = Lifecycle.EDITED

    def on_user_edit(self) -> None:
        if self.state is Lifecycle.LOADED:
            self.state = Lifecycle.EDITED

    def on_defaults_applied(self) -> None:
        if self.state is Lifecycle.NEW:
            self.state = Lifecycle.EDITED

    @property
    def accepts_defaults(self) -> bool:
        return self.state is Lifecycle.NEW

    def decide(self, has_parameters: bool, forced: bool = False) -> Optional[RequestShape]:
        """Return the request shape for the next pass, or None to suppress it."""
        if self.state is Lifecycle.NEW:
            return RequestShape.DESCRIBE

        if self.state is Lifecycle.LOADED:
            if not self._loaded_pass_done:
                self._loaded_pass_done = True
                return RequestShape.RECOMPUTE
            return RequestShape.RECOMPUTE if forced else None

        return RequestShape.RECOMPUTE if has_parameters else RequestShape.DESCRIBE
