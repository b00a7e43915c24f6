"""Decode persisted line-item data into the canonical in-memory shape.

Two historical serializations exist for both prompts and additionals.
Prompts arrive either as a list of ``{id, label, value, order}`` objects or
as an id-keyed object whose entries are ``{label, value, order}`` (or, in
the oldest rows, the bare value). Additionals arrive either as a list or as
a legacy id-keyed object ``{id: {value}}``. Nothing downstream of this
module sees the legacy shapes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from quote_sync.shared.errors import SnapshotDecodeError
from .models import NET_AMOUNT, SENTINEL_ORDER, Additional, Output, Parameter

logger = logging.getLogger(__name__)


@dataclass
class DecodedMulti:
    qty_prompt: str
    qty_inputs: List[str]


@dataclass
class DecodedLineItem:
    product_id: str
    parameters: List[Parameter] = field(default_factory=list)
    outputs: List[Output] = field(default_factory=list)
    additionals: List[Additional] = field(default_factory=list)
    description: str = ""
    multi: Optional[DecodedMulti] = None
    needs_recalculation: bool = False
    is_finalized: bool = False


def _as_order(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return SENTINEL_ORDER


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def decode_prompts(raw: Any) -> List[Parameter]:
    if raw is None:
        return []

    parameters: List[Parameter] = []
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict) or entry.get("id") in (None, ""):
                logger.warning(f"Skipping persisted prompt without id: {entry!r}")
                continue
            param_id = str(entry["id"])
            parameters.append(
                Parameter(
                    id=param_id,
                    label=str(entry.get("label") or param_id),
                    value=entry.get("value"),
                    order=_as_order(entry.get("order")),
                )
            )
        return parameters

    if isinstance(raw, dict):
        for param_id, entry in raw.items():
            if isinstance(entry, dict):
                parameters.append(
                    Parameter(
                        id=str(param_id),
                        label=str(entry.get("label") or param_id),
                        value=entry.get("value"),
                        order=_as_order(entry.get("order")),
                    )
                )
            else:
                parameters.append(Parameter(id=str(param_id), label=str(param_id), value=entry))
        return parameters

    raise SnapshotDecodeError(f"Unsupported prompts shape: {type(raw).__name__}")


def decode_additionals(raw: Any) -> List[Additional]:
    if raw is None:
        return []

    if isinstance(raw, list):
        additionals: List[Additional] = []
        for entry in raw:
            if not isinstance(entry, dict) or entry.get("id") in (None, ""):
                logger.warning(f"Skipping persisted additional without id: {entry!r}")
                continue
            additionals.append(
                Additional(
                    id=str(entry["id"]),
                    name=str(entry.get("name") or entry["id"]),
                    type=str(entry.get("type") or NET_AMOUNT),
                    value=_as_number(entry.get("value")),
                    is_custom=bool(entry.get("isCustom", False)),
                )
            )
        return additionals

    if isinstance(raw, dict):
        # Legacy rows: {additional_id: {"value": ...}}
        return [
            Additional(
                id=str(additional_id),
                name=f"Adjustment {additional_id}",
                type=NET_AMOUNT,
                value=_as_number(config.get("value") if isinstance(config, dict) else config),
                is_custom=True,
            )
            for additional_id, config in raw.items()
        ]

    raise SnapshotDecodeError(f"Unsupported additionals shape: {type(raw).__name__}")


def decode_multi(raw: Any, max_quantities: int) -> Optional[DecodedMulti]:
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise SnapshotDecodeError(f"Unsupported multi-quantity shape: {type(raw).__name__}")

    inputs = raw.get("qtyInputs")
    qty_inputs = [("" if q is None else str(q)) for q in inputs] if isinstance(inputs, list) else []
    return DecodedMulti(
        qty_prompt=str(raw.get("qtyPrompt") or ""),
        qty_inputs=qty_inputs[:max_quantities],
    )


def decode_line_item(raw: Dict[str, Any], max_quantities: int = 10) -> DecodedLineItem:
    """Normalize one persisted snapshot; raises SnapshotDecodeError on bad shapes."""
    if not isinstance(raw, dict):
        raise SnapshotDecodeError(f"Persisted line item must be an object, got {type(raw).__name__}")

    return DecodedLineItem(
        product_id=str(raw.get("productId") or ""),
        parameters=decode_prompts(raw.get("prompts")),
        outputs=[Output.from_dict(o) for o in raw.get("outputs") or [] if isinstance(o, dict)],
        additionals=decode_additionals(raw.get("itemAdditionals")),
        description=str(raw.get("itemDescription") or ""),
        multi=decode_multi(raw.get("multi"), max_quantities),
        needs_recalculation=bool(raw.get("needsRecalculation", False)),
        is_finalized=bool(raw.get("isFinalized", False)),
    )
