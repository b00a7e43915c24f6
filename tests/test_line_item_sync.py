"""End-to-end behavior of LineItemSynchronizer against a fake pricing engine."""

import asyncio
import logging

import pytest

from conftest import (
    COLOUR_ID,
    OTHER_PRODUCT_ID,
    PAPER_ID,
    PRODUCT_ID,
    QTY_ID,
    RecordingParent,
    wait_for_calls,
)
from quote_sync.core.lifecycle import Lifecycle
from quote_sync.core.models import CUSTOM_PRODUCT_ID, ErrorKind, Product
from quote_sync.core.session import InMemoryTokenStore
from quote_sync.core.synchronizer import LineItemSynchronizer, SyncPhase
from quote_sync.shared.errors import PricingEngineError
from quote_sync.shared.pricing_client import RemotePricingClient

DEBOUNCE = 0.01
ITEM_ID = "line-1"


def make_sync(client, parent, **kwargs):
    kwargs.setdefault("debounce_seconds", DEBOUNCE)
    return LineItemSynchronizer(ITEM_ID, client, parent, **kwargs)


def loaded_item(qty=100, paper="Matte", price=None, **extra):
    data = {
        "productId": PRODUCT_ID,
        "prompts": {
            QTY_ID: {"label": "Quantity", "value": qty, "order": 1},
            PAPER_ID: {"label": "Paper", "value": paper, "order": 2},
        },
        "outputs": [
            {"name": "Price", "type": "price", "value": price if price is not None else qty * 0.5},
            {"name": "Product", "type": "text", "value": PRODUCT_ID},
            {"name": "Preview", "type": "image", "value": "https://cdn.example.com/preview.png"},
        ],
        "itemDescription": "Flyers",
        "itemAdditionals": [],
    }
    data.update(extra)
    return data


class TestNewItem:
    """A new item accepts the engine's defaults in a single fetch cycle."""

    @pytest.mark.asyncio
    async def test_select_product_describes_then_recomputes_once(self, client, transport, parent):
        sync = make_sync(client, parent, products=[Product(PRODUCT_ID, "Flyers A5")])
        sync.start()
        assert sync.lifecycle is Lifecycle.NEW

        sync.select_product(PRODUCT_ID)
        await sync.settle()

        assert transport.describe_calls == [PRODUCT_ID]
        assert transport.recompute_calls == [{QTY_ID: 100, PAPER_ID: "Matte"}]
        assert len(parent.changes) == 1
        assert parent.last["price"] == 50.0
        assert parent.last["itemDescription"] == "Flyers A5"
        assert sync.lifecycle is Lifecycle.EDITED
        assert sync.phase is SyncPhase.READY

    @pytest.mark.asyncio
    async def test_empty_defaults_are_not_stored(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(PRODUCT_ID)
        await sync.settle()

        ids = [p.id for p in sync.parameters]
        assert ids == [QTY_ID, PAPER_ID]
        assert COLOUR_ID not in ids

    @pytest.mark.asyncio
    async def test_set_parameter_requires_product(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        with pytest.raises(RuntimeError):
            sync.set_parameter(QTY_ID, 10)

    @pytest.mark.asyncio
    async def test_outputs_are_classified(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(PRODUCT_ID)
        await sync.settle()

        assert sync.price_output.value == 50.0
        assert [o.name for o in sync.other_outputs] == ["Product"]
        assert [o.name for o in sync.image_outputs] == ["Preview"]
        assert [d.id for d in sync.numeric_parameters] == [QTY_ID]
        assert sync.is_complete


class TestLoadedItem:
    """Persisted values are authoritative over remote defaults."""

    @pytest.mark.asyncio
    async def test_loaded_item_is_recomputed_never_described(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(qty=500, paper="Gloss", price=350.0))
        await sync.settle()

        assert transport.describe_calls == []
        assert transport.recompute_calls == [{QTY_ID: 500, PAPER_ID: "Gloss"}]
        values = {p.id: p.value for p in sync.parameters}
        assert values == {QTY_ID: 500, PAPER_ID: "Gloss"}
        assert sync.lifecycle is Lifecycle.LOADED

    @pytest.mark.asyncio
    async def test_unchanged_result_does_not_notify_parent(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        assert parent.changes == []

    @pytest.mark.asyncio
    async def test_stale_persisted_price_is_refreshed(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(price=42.0))
        await sync.settle()

        assert len(parent.changes) == 1
        assert parent.last["price"] == 50.0

    @pytest.mark.asyncio
    async def test_edit_moves_loaded_item_to_edited(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        sync.set_parameter(QTY_ID, "300")
        await sync.settle()

        assert sync.lifecycle is Lifecycle.EDITED
        assert transport.recompute_calls[-1] == {QTY_ID: 300, PAPER_ID: "Matte"}
        assert parent.last["price"] == 150.0
        assert transport.describe_calls == []

    @pytest.mark.asyncio
    async def test_legacy_list_prompts_and_additionals_decode(self, client, parent):
        data = loaded_item(price=60.0)
        data["prompts"] = [
            {"id": QTY_ID, "label": "Quantity", "value": 100, "order": 1},
            {"id": PAPER_ID, "label": "Paper", "value": "Matte", "order": 2},
        ]
        data["itemAdditionals"] = {"ship": {"value": 10}}
        sync = make_sync(client, parent)
        sync.start(data)
        await sync.settle()

        assert [a.name for a in sync.additionals] == ["Adjustment ship"]
        assert parent.last["price"] == 60.0

    @pytest.mark.asyncio
    async def test_undecodable_data_reports_decode_error(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start({"productId": PRODUCT_ID, "prompts": "not-a-shape"})
        await sync.settle()

        assert sync.error.kind is ErrorKind.DECODE
        assert sync.lifecycle is Lifecycle.NEW
        assert transport.calls == []


class TestDebounce:
    @pytest.mark.asyncio
    async def test_burst_of_edits_issues_one_request(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()
        baseline = len(transport.calls)

        for qty in ("1", "12", "120"):
            sync.set_parameter(QTY_ID, qty)
        await sync.settle()

        assert len(transport.calls) == baseline + 1
        assert transport.recompute_calls[-1][QTY_ID] == 120
        assert len(parent.changes) == 1

    @pytest.mark.asyncio
    async def test_identical_result_is_emitted_once(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        sync.set_parameter(QTY_ID, 200)
        await sync.settle()
        sync.force_recompute()
        await sync.settle()

        assert len(parent.changes) == 1


class TestSupersededResponses:
    @pytest.mark.asyncio
    async def test_late_response_from_older_cycle_is_discarded(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        hold = transport.hold_next()
        sync.set_parameter(QTY_ID, 200)
        await wait_for_calls(transport, 2)

        sync.set_parameter(QTY_ID, 300)
        await wait_for_calls(transport, 3)
        await asyncio.sleep(0.01)
        assert parent.changes == []

        hold.set()
        await sync.settle()

        assert sync.price_output.value == 150.0
        assert len(parent.changes) == 1
        assert parent.last["price"] == 150.0

    @pytest.mark.asyncio
    async def test_product_change_discards_previous_product_response(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start()

        hold = transport.hold_next()
        sync.select_product(PRODUCT_ID)
        await wait_for_calls(transport, 1)

        sync.select_product(OTHER_PRODUCT_ID)
        await wait_for_calls(transport, 3)
        hold.set()
        await sync.settle()

        assert all(snapshot["productId"] == OTHER_PRODUCT_ID for _, snapshot in parent.changes)
        product_output = [o for o in sync.outputs if o.name == "Product"][0]
        assert product_output.value == OTHER_PRODUCT_ID


class TestTeardown:
    @pytest.mark.asyncio
    async def test_switching_product_clears_item_state(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "200"]}))
        await sync.settle()
        sync.add_custom_additional("Setup", 5)
        sync.finish_edit()

        sync.select_product(OTHER_PRODUCT_ID)
        assert sync.parameters == []
        assert sync.outputs == []
        assert sync.additionals == []
        assert sync.batch_rows == []
        assert sync.multi.enabled is False
        assert sync.is_finalized is False
        assert sync.lifecycle is Lifecycle.NEW

        await sync.settle()
        assert transport_products(parent) == {PRODUCT_ID, OTHER_PRODUCT_ID}
        assert parent.last["productId"] == OTHER_PRODUCT_ID
        assert parent.last["itemAdditionals"] == []

    @pytest.mark.asyncio
    async def test_selecting_same_product_is_noop(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(PRODUCT_ID)
        await sync.settle()
        calls = len(transport.calls)

        sync.select_product(PRODUCT_ID)
        await sync.settle()
        assert len(transport.calls) == calls


def transport_products(parent: RecordingParent):
    return {snapshot["productId"] for _, snapshot in parent.changes}


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_legacy_ids_are_remapped_by_label(self, client, transport, parent, caplog):
        data = loaded_item()
        data["prompts"] = {
            "qty": {"label": "Quantity", "value": 300, "order": 1},
            "paper": {"label": " paper ", "value": "Gloss", "order": 2},
            "lam": {"label": "Lamination", "value": "yes", "order": 3},
        }
        sync = make_sync(client, parent)
        with caplog.at_level(logging.WARNING):
            sync.start(data)
            await sync.settle()

        assert transport.describe_calls == [PRODUCT_ID]
        assert transport.recompute_calls == [{QTY_ID: 300, PAPER_ID: "Gloss"}]
        assert {p.id: p.value for p in sync.parameters} == {QTY_ID: 300, PAPER_ID: "Gloss"}
        assert "Lamination" in caplog.text
        assert parent.last["price"] == pytest.approx(210.0)
        assert sync.lifecycle is Lifecycle.LOADED


class TestMultiQuantity:
    @pytest.mark.asyncio
    async def test_loaded_batch_prices_every_quantity(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "250", "1.000"]}))
        await sync.settle()

        rows = sync.batch_rows
        assert [row.qty for row in rows] == [100, 250, 1000]
        assert [row.total_price for row in rows] == [50.0, 125.0, 500.0]
        assert all(row.unit_price == 0.5 for row in rows)
        assert parent.last["multi"]["qtyPrompt"] == QTY_ID
        assert len(parent.last["multi"]["rows"]) == 3

    @pytest.mark.asyncio
    async def test_first_slot_follows_quantity_parameter(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(PRODUCT_ID)
        await sync.settle()

        sync.enable_multi()
        assert sync.multi.qty_prompt == QTY_ID
        assert sync.multi.qty_inputs[0] == "100"

        sync.set_quantity(1, "500")
        await sync.settle()
        assert [row.qty for row in sync.batch_rows] == [100, 500]

        sync.set_parameter(QTY_ID, "200")
        await sync.settle()
        assert sync.multi.qty_inputs[0] == "200"
        assert [row.qty for row in sync.batch_rows] == [200, 500]

        with pytest.raises(ValueError):
            sync.set_quantity(0, "1")

    @pytest.mark.asyncio
    async def test_single_failure_discards_whole_batch(self, client, transport, parent):
        transport.fail_when = lambda values: (
            PricingEngineError("boom", status=500) if values.get(QTY_ID) == 250 else None
        )
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "250"]}))
        await sync.settle()

        assert sync.batch_rows == []
        assert sync.batch_error.kind is ErrorKind.BATCH
        assert sync.error is None
        assert sync.price_output.value == 50.0

    @pytest.mark.asyncio
    async def test_unexpected_failure_clears_previous_rows(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "250"]}))
        await sync.settle()
        assert [row.qty for row in sync.batch_rows] == [100, 250]

        transport.fail_when = lambda values: (
            UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
            if values.get(QTY_ID) == 300
            else None
        )
        sync.set_quantity(1, "300")
        await sync.settle()

        assert sync.batch_rows == []
        assert sync.batch_error.kind is ErrorKind.BATCH
        assert sync.error is None
        assert parent.last["multi"]["rows"] == []

    @pytest.mark.asyncio
    async def test_restored_first_slot_mirrors_quantity_parameter(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(qty=100, multi={"qtyPrompt": QTY_ID, "qtyInputs": ["", "250"]}))
        await sync.settle()

        assert sync.multi.qty_inputs == ["100", "250"]
        assert [row.qty for row in sync.batch_rows] == [100, 250]

    @pytest.mark.asyncio
    async def test_disabling_multi_clears_rows(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "200"]}))
        await sync.settle()
        assert sync.batch_rows

        sync.enable_multi(False)
        assert sync.batch_rows == []
        assert parent.last["multi"] is None

    @pytest.mark.asyncio
    async def test_quantity_multiplier_uses_batch_quantities(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item(multi={"qtyPrompt": QTY_ID, "qtyInputs": ["100", "200"]}))
        await sync.settle()

        sync.add_custom_additional("Packing", 0.1, type="quantity_multiplier")
        assert sync.final_price == pytest.approx(50.0 + 0.1 * 300)


class TestCustomProduct:
    @pytest.mark.asyncio
    async def test_custom_product_prices_locally(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(CUSTOM_PRODUCT_ID)
        assert len(parent.changes) == 1
        assert parent.last["price"] == 0.0

        sync.set_custom_values(quantity=3, unit_price="2,5")
        await sync.settle()

        assert transport.calls == []
        assert sync.price_output.value == 7.5
        assert parent.last["price"] == 7.5
        assert sync.lifecycle is Lifecycle.EDITED

    @pytest.mark.asyncio
    async def test_custom_product_rejects_other_parameters(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        sync.select_product(CUSTOM_PRODUCT_ID)
        with pytest.raises(ValueError):
            sync.set_parameter(QTY_ID, 3)


class TestAdditionalsAndEditing:
    @pytest.mark.asyncio
    async def test_adjustments_change_final_price(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        added = sync.add_custom_additional("Setup", 10)
        assert parent.last["price"] == 60.0
        assert parent.last["itemAdditionals"][0]["isCustom"] is True

        sync.update_additional_value(added.id, 15)
        assert parent.last["price"] == 65.0

        sync.remove_additional(added.id)
        assert parent.last["price"] == 50.0

    @pytest.mark.asyncio
    async def test_custom_adjustment_requires_name(self, client, parent):
        sync = make_sync(client, parent)
        with pytest.raises(ValueError):
            sync.add_custom_additional("  ", 1)

    @pytest.mark.asyncio
    async def test_finish_edit_and_remove_notify_parent(self, client, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        sync.finish_edit()
        assert parent.finished == [ITEM_ID]
        assert parent.last["isFinalized"] is True

        sync.remove()
        assert parent.removed == [ITEM_ID]
        await sync.close()


class TestErrors:
    @pytest.mark.asyncio
    async def test_missing_credential_is_a_precondition_error(self, transport, parent):
        client = RemotePricingClient(transport, InMemoryTokenStore(None))
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        assert sync.error.kind is ErrorKind.PRECONDITION
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_previous_outputs(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        transport.fail_when = lambda values: PricingEngineError("engine down", status=503)
        sync.set_parameter(QTY_ID, 400)
        await sync.settle()

        assert sync.error.kind is ErrorKind.REMOTE
        assert sync.price_output.value == 50.0

    @pytest.mark.asyncio
    async def test_successful_cycle_clears_error(self, client, transport, parent):
        sync = make_sync(client, parent)
        sync.start(loaded_item())
        await sync.settle()

        transport.fail_when = lambda values: PricingEngineError("engine down", status=503)
        sync.set_parameter(QTY_ID, 400)
        await sync.settle()
        transport.fail_when = None
        sync.set_parameter(QTY_ID, 500)
        await sync.settle()

        assert sync.error is None
        assert sync.price_output.value == 250.0

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, client, parent):
        sync = make_sync(client, parent)
        sync.start()
        with pytest.raises(RuntimeError):
            sync.start()
