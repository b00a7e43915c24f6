"""Shared data models for line-item synchronization."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

SENTINEL_ORDER = 999

CUSTOM_PRODUCT_ID = "__custom__"
CUSTOM_QUANTITY_ID = "custom_quantity"
CUSTOM_UNIT_PRICE_ID = "custom_unit_price"

NET_AMOUNT = "net_amount"
QUANTITY_MULTIPLIER = "quantity_multiplier"
PERCENTAGE = "percentage"


def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_order(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return SENTINEL_ORDER


@dataclass
class Parameter:
    """One user-editable input of a configurable product."""

    id: str
    label: str
    value: Any
    order: int = SENTINEL_ORDER

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "value": self.value, "order": self.order}


@dataclass
class PromptDefinition:
    """Parameter definition as published by the pricing engine."""

    id: str
    label: str
    type: str = ""
    current_value: Any = None
    sequence: int = SENTINEL_ORDER
    value_options: List[Any] = field(default_factory=list)

    @property
    def is_numeric(self) -> bool:
        """Free numeric inputs only; option lists never count as numeric."""
        if self.value_options:
            return False
        if "number" in self.type.lower():
            return True
        return isinstance(self.current_value, (int, float)) and not isinstance(
            self.current_value, bool
        )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], index: int = 0) -> "PromptDefinition":
        prompt_id = _first_present(raw, "id", "key", "name")
        prompt_id = str(prompt_id) if prompt_id is not None else f"p{index}"
        label = _first_present(raw, "promptText", "label", "title", "name")
        options = _first_present(raw, "valueOptions", "options")
        return cls(
            id=prompt_id,
            label=str(label) if label is not None else prompt_id,
            type=str(_first_present(raw, "promptType", "type") or ""),
            current_value=_first_present(raw, "currentValue", "default", "value"),
            sequence=_as_order(_first_present(raw, "sequence", "order")),
            value_options=list(options) if isinstance(options, list) else [],
        )


@dataclass
class Output:
    """One computed result returned by the pricing engine."""

    name: str
    type: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "value": self.value}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Output":
        return cls(
            name=str(raw.get("name") or ""),
            type=str(raw.get("type") or ""),
            value=raw.get("value"),
        )


@dataclass
class Additional:
    """Manual price adjustment attached to a line item."""

    id: str
    name: str
    type: str
    value: float
    is_custom: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "isCustom": self.is_custom,
        }


@dataclass
class CatalogAdditional:
    """Reference adjustment offered by the additionals catalog."""

    id: str
    name: str
    type: str = NET_AMOUNT
    default_value: float = 0.0
    description: Optional[str] = None
    is_discount: bool = False


@dataclass
class Product:
    id: str
    display_name: str
    is_active: bool = True


@dataclass
class PricingResponse:
    """Structured pricing engine answer: definitions plus computed outputs."""

    prompts: List[PromptDefinition] = field(default_factory=list)
    outputs: List[Output] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> "PricingResponse":
        if not isinstance(raw, dict):
            return cls()

        prompts_raw = next(
            (
                raw[key]
                for key in ("prompts", "inputs", "fields", "parameters")
                if isinstance(raw.get(key), list)
            ),
            [],
        )
        outputs_raw = raw.get("outputValues")
        if not isinstance(outputs_raw, list):
            outputs_raw = raw.get("outputs") if isinstance(raw.get("outputs"), list) else []

        return cls(
            prompts=[
                PromptDefinition.from_dict(item, index)
                for index, item in enumerate(prompts_raw)
                if isinstance(item, dict)
            ],
            outputs=[Output.from_dict(item) for item in outputs_raw if isinstance(item, dict)],
        )


@dataclass
class BatchRow:
    """Priced result for one quantity of a multi-quantity batch."""

    qty: float
    outputs: List[Output]
    total_price: float
    unit_price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qty": self.qty,
            "outputs": [output.to_dict() for output in self.outputs],
            "totalPrice": self.total_price,
            "unitPrice": self.unit_price,
        }


@dataclass
class MultiQuantity:
    qty_prompt: str
    qty_inputs: List[str]
    rows: List[BatchRow] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qtyPrompt": self.qty_prompt,
            "qtyInputs": list(self.qty_inputs),
            "rows": [row.to_dict() for row in self.rows],
        }


@dataclass
class LineItemSnapshot:
    """Parent-facing representation of one line item."""

    product_id: str
    prompts: List[Parameter]
    outputs: List[Output]
    price: float
    multi: Optional[MultiQuantity]
    item_description: str
    item_additionals: List[Additional]
    is_finalized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "prompts": [prompt.to_dict() for prompt in self.prompts],
            "outputs": [output.to_dict() for output in self.outputs],
            "price": self.price,
            "multi": self.multi.to_dict() if self.multi else None,
            "itemDescription": self.item_description,
            "itemAdditionals": [additional.to_dict() for additional in self.item_additionals],
            "isFinalized": self.is_finalized,
        }


class ErrorKind(str, Enum):
    PRECONDITION = "precondition"
    UNAUTHORIZED = "unauthorized"
    REMOTE = "remote"
    BATCH = "batch"
    DECODE = "decode"


@dataclass
class ItemError:
    """Per-item failure surfaced to whoever renders the line item."""

    kind: ErrorKind
    message: str
