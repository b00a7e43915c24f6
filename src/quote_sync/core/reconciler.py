"""Repair of persisted parameter ids that no longer match the pricing engine."""

import logging
import re
from typing import Dict, Iterable, List, Tuple

from .models import Parameter, PromptDefinition

logger = logging.getLogger(__name__)

CANONICAL_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_canonical_id(param_id: str) -> bool:
    return bool(CANONICAL_ID_PATTERN.match(str(param_id)))


def needs_reconciliation(param_ids: Iterable[str]) -> bool:
    """True when any parameter id is not in the engine's canonical format."""
    return any(not is_canonical_id(param_id) for param_id in param_ids)


def _label_key(label: str) -> str:
    return str(label or "").strip().lower()


def build_label_map(definitions: Iterable[PromptDefinition]) -> Dict[str, str]:
    """Map trimmed, lower-cased labels to canonical ids (first definition wins)."""
    label_map: Dict[str, str] = {}
    for definition in definitions:
        key = _label_key(definition.label)
        if key and key not in label_map:
            label_map[key] = definition.id
    return label_map


def remap_parameters(
    parameters: Iterable[Parameter], definitions: Iterable[PromptDefinition]
) -> Tuple[List[Parameter], List[Parameter]]:
    """
    Re-key parameters under canonical ids by matching labels.

    Returns ``(remapped, dropped)``. Values, labels and orders are kept;
    ids the engine already knows are kept, and parameters whose label has
    no match are dropped.
    """
    definitions = list(definitions)
    known_ids = {definition.id for definition in definitions}
    label_map = build_label_map(definitions)
    remapped: List[Parameter] = []
    dropped: List[Parameter] = []

    for parameter in parameters:
        if parameter.id in known_ids:
            canonical_id = parameter.id
        else:
            canonical_id = label_map.get(_label_key(parameter.label))
        if canonical_id is None:
            dropped.append(parameter)
            continue
        remapped.append(
            Parameter(
                id=canonical_id,
                label=parameter.label,
                value=parameter.value,
                order=parameter.order,
            )
        )

    if dropped:
        logger.warning(
            "Dropped %d parameter(s) with no matching label during id reconciliation: %s",
            len(dropped),
            ", ".join(f"{p.id} ({p.label})" for p in dropped),
        )
    logger.info(f"Reconciled {len(remapped)} parameter id(s) by label")
    return remapped, dropped
