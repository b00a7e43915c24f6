"""Current parameter values of one line item."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import SENTINEL_ORDER, Parameter, PromptDefinition

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


class FieldStore:
    """
    Holds each parameter's value, label and display order.

    Mutations are synchronous. The store knows nothing about lifecycle; the
    synchronizer decides whether a write counts as a user edit.
    """

    def __init__(self) -> None:
        self._parameters: Dict[str, Parameter] = {}
        self._definitions: Dict[str, PromptDefinition] = {}

    def __len__(self) -> int:
        return len(self._parameters)

    def __contains__(self, param_id: str) -> bool:
        return param_id in self._parameters

    def get(self, param_id: str) -> Optional[Parameter]:
        return self._parameters.get(param_id)

    def set(self, param_id: str, value: Any, label: Optional[str] = None) -> Parameter:
        """Write one value, resolving label and order for first writes."""
        existing = self._parameters.get(param_id)
        if existing is not None:
            existing.value = value
            if label:
                existing.label = label
            return existing

        definition = self._definitions.get(param_id)
        order = definition.sequence if definition else SENTINEL_ORDER
        if not label:
            label = definition.label if definition else param_id
        parameter = Parameter(id=param_id, label=label, value=value, order=order)
        self._parameters[param_id] = parameter
        return parameter

    def update_definitions(self, definitions: Iterable[PromptDefinition]) -> None:
        """Remember the latest remote definitions for order and label lookup."""
        self._definitions = {definition.id: definition for definition in definitions}

    @property
    def definitions(self) -> List[PromptDefinition]:
        return list(self._definitions.values())

    def apply_defaults(self, definitions: Iterable[PromptDefinition]) -> int:
        """
        Seed the store from remote default values.

        Only new line items call this. Definitions without a current value
        are skipped and values already present are kept. Returns the number
        of parameters written.
        """
        written = 0
        for definition in definitions:
            existing = self._parameters.get(definition.id)
            if existing is not None:
                existing.label = definition.label
                existing.order = definition.sequence
                continue
            if _is_empty(definition.current_value):
                continue
            self._parameters[definition.id] = Parameter(
                id=definition.id,
                label=definition.label,
                value=definition.current_value,
                order=definition.sequence,
            )
            written += 1
        logger.debug(f"Applied {written} remote default values")
        return written

    def replace(self, parameters: Iterable[Parameter]) -> None:
        self._parameters = {parameter.id: parameter for parameter in parameters}

    def clear(self) -> None:
        self._parameters.clear()
        self._definitions.clear()

    def snapshot(self) -> List[Parameter]:
        """Copies of the parameters, sorted by display order."""
        ordered = sorted(self._parameters.values(), key=lambda p: p.order)
        return [Parameter(p.id, p.label, p.value, p.order) for p in ordered]

    def values(self) -> Dict[str, Any]:
        return {parameter.id: parameter.value for parameter in self.snapshot()}
