"""Shared fakes for line-item synchronization tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from quote_sync.core.session import InMemoryTokenStore
from quote_sync.interfaces.base import ParentAggregator, PricingTransport
from quote_sync.shared.pricing_client import RemotePricingClient

QTY_ID = "11111111-1111-4111-8111-111111111111"
PAPER_ID = "22222222-2222-4222-8222-222222222222"
COLOUR_ID = "33333333-3333-4333-8333-333333333333"

PRODUCT_ID = "prod-flyers"
OTHER_PRODUCT_ID = "prod-posters"

PROMPTS = [
    {"id": QTY_ID, "promptText": "Quantity", "promptType": "number", "currentValue": 100, "sequence": 1},
    {
        "id": PAPER_ID,
        "promptText": "Paper",
        "promptType": "select",
        "currentValue": "Matte",
        "valueOptions": ["Matte", "Gloss"],
        "sequence": 2,
    },
    {"id": COLOUR_ID, "promptText": "Colour", "promptType": "color", "currentValue": "", "sequence": 3},
]

RATES = {"Matte": 0.5, "Gloss": 0.7}


def flyer_price(values: Dict[str, Any]) -> float:
    return float(values.get(QTY_ID, 0)) * RATES.get(values.get(PAPER_ID), 0.5)


class FakePricingTransport(PricingTransport):
    """In-memory pricing engine priced by a plain function of the inputs."""

    def __init__(
        self,
        prompts: Optional[List[Dict[str, Any]]] = None,
        price_fn: Callable[[Dict[str, Any]], float] = flyer_price,
    ):
        self.prompts = prompts if prompts is not None else PROMPTS
        self.price_fn = price_fn
        self.calls: List[Tuple[str, Optional[List[Dict[str, Any]]]]] = []
        self.fail_when: Optional[Callable[[Dict[str, Any]], Optional[Exception]]] = None
        self._holds: List[asyncio.Event] = []

    def hold_next(self) -> asyncio.Event:
        """Block the next request until the returned event is set."""
        event = asyncio.Event()
        self._holds.append(event)
        return event

    @property
    def describe_calls(self) -> List[str]:
        return [product_id for product_id, inputs in self.calls if inputs is None]

    @property
    def recompute_calls(self) -> List[Dict[str, Any]]:
        return [
            {entry["id"]: entry["value"] for entry in inputs}
            for _, inputs in self.calls
            if inputs is not None
        ]

    async def fetch(self, product_id, token, inputs=None):
        self.calls.append((product_id, inputs))
        if self._holds:
            await self._holds.pop(0).wait()

        values = {p["id"]: p["currentValue"] for p in self.prompts if p["currentValue"] != ""}
        for entry in inputs or []:
            values[entry["id"]] = entry["value"]

        if self.fail_when is not None:
            error = self.fail_when(values)
            if error is not None:
                raise error

        return {
            "prompts": [dict(p, currentValue=values.get(p["id"], p["currentValue"])) for p in self.prompts],
            "outputValues": [
                {"name": "Price", "type": "price", "value": self.price_fn(values)},
                {"name": "Product", "type": "text", "value": product_id},
                {"name": "Preview", "type": "image", "value": "https://cdn.example.com/preview.png"},
            ],
        }


class RecordingParent(ParentAggregator):
    def __init__(self):
        self.changes: List[Tuple[str, Dict[str, Any]]] = []
        self.removed: List[str] = []
        self.finished: List[str] = []

    @property
    def last(self) -> Dict[str, Any]:
        return self.changes[-1][1]

    def on_change(self, item_id, snapshot):
        self.changes.append((item_id, snapshot))

    def on_remove(self, item_id):
        self.removed.append(item_id)

    def on_finish_edit(self, item_id):
        self.finished.append(item_id)


@pytest.fixture
def transport():
    return FakePricingTransport()


@pytest.fixture
def token_store():
    return InMemoryTokenStore("token-1")


@pytest.fixture
def client(transport, token_store):
    return RemotePricingClient(transport, token_store)


@pytest.fixture
def parent():
    return RecordingParent()


async def wait_for_calls(transport: FakePricingTransport, count: int, timeout: float = 1.0) -> None:
    """Yield to the loop until the transport has seen ``count`` requests."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(transport.calls) < count:
        if loop.time() > deadline:
            raise AssertionError(f"Expected {count} calls, saw {len(transport.calls)}")
        await asyncio.sleep(0.001)
