"""Per-line-item pricing synchronizer.

Keeps a line item's priced snapshot consistent with the remote pricing
engine while the user edits parameters. Edits land in the field store,
pass through the debounce gate, and start a fetch cycle whose request shape
is chosen by the lifecycle classifier. Results update the outputs and are
offered to the snapshot emitter, which notifies the parent only on change.

Each primary cycle is tagged with a generation number. A cycle whose
generation is no longer current when its response arrives (because a newer
cycle started or the product changed) is discarded. Batch pricing uses its
own generation counter.
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Coroutine, Dict, Iterable, List, Optional, Set

from quote_sync.interfaces.base import ParentAggregator
from quote_sync.shared.catalog import find_product
from quote_sync.shared.errors import (
    BatchQuantityError,
    MissingCredentialError,
    QuoteSyncError,
    SnapshotDecodeError,
    UnauthorizedError,
)
from quote_sync.shared.logging import bind_line_item
from quote_sync.shared.metrics import increment_errors
from quote_sync.shared.tracing import stage_span
from .batch import BatchQuantityEngine, MultiQuantityConfig
from .debounce import DebounceGate
from .decode import decode_line_item
from .field_store import FieldStore
from .lifecycle import Lifecycle, LifecycleClassifier, RequestShape
from .models import (
    CUSTOM_PRODUCT_ID,
    CUSTOM_QUANTITY_ID,
    CUSTOM_UNIT_PRICE_ID,
    NET_AMOUNT,
    QUANTITY_MULTIPLIER,
    Additional,
    BatchRow,
    CatalogAdditional,
    ErrorKind,
    ItemError,
    LineItemSnapshot,
    Output,
    Parameter,
    PricingResponse,
    Product,
    PromptDefinition,
)
from .outputs import find_price_output, image_outputs, other_outputs, parse_amount
from .reconciler import needs_reconciliation, remap_parameters
from .snapshot import SnapshotEmitter, compute_final_price

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.35

CUSTOM_DEFINITIONS = [
    PromptDefinition(id=CUSTOM_QUANTITY_ID, label="Quantity", type="number", sequence=1),
    PromptDefinition(id=CUSTOM_UNIT_PRICE_ID, label="Unit price", type="number", sequence=2),
]

_ADDITIONAL_TYPES = (NET_AMOUNT, QUANTITY_MULTIPLIER)


class SyncPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    AWAITING_RECOMPUTE = "awaiting_recompute"


def _error_kind(exc: Exception) -> ErrorKind:
    if isinstance(exc, MissingCredentialError):
        return ErrorKind.PRECONDITION
    if isinstance(exc, UnauthorizedError):
        return ErrorKind.UNAUTHORIZED
    if isinstance(exc, BatchQuantityError):
        return ErrorKind.BATCH
    if isinstance(exc, SnapshotDecodeError):
        return ErrorKind.DECODE
    return ErrorKind.REMOTE


class LineItemSynchronizer:
    """
    Owns the state machine of one configurable line item.

    Public mutators are synchronous; network work runs in tasks owned by the
    synchronizer. ``settle()`` waits until the debounce timer and all of
    those tasks have finished.
    """

    def __init__(
        self,
        item_id: str,
        client,
        parent: Optional[ParentAggregator] = None,
        *,
        products: Optional[Iterable[Product]] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_quantities: int = 10,
    ):
        """
        Initialize the synchronizer.

        Args:
            item_id: Identifier the parent knows this line item by
            client: Pricing client exposing ``describe`` and ``recompute``
            parent: Receiver of change, remove and finish-edit notifications
            products: Active product list, used to auto-fill descriptions
            debounce_seconds: Quiescence window for parameter edits
            max_quantities: Maximum quantity slots in multi-quantity mode
        """
        self.item_id = str(item_id)
        self._client = client
        self._parent = parent
        self._products: List[Product] = list(products or [])

        self._store = FieldStore()
        self._classifier = LifecycleClassifier()
        self._gate: DebounceGate[Dict[str, Any]] = DebounceGate(
            debounce_seconds, self._on_debounced
        )
        self._batch_engine = BatchQuantityEngine(client)
        self._emitter = SnapshotEmitter(self.item_id, parent)
        self._multi = MultiQuantityConfig(max_quantities)

        self._tasks: Set[asyncio.Task] = set()
        self._phase = SyncPhase.UNINITIALIZED
        self._initializing = False
        self._generation = 0
        self._batch_generation = 0
        self._in_flight = 0

        self._product_id = ""
        self._debounced: Dict[str, Any] = {}
        self._outputs: List[Output] = []
        self._batch_rows: List[BatchRow] = []
        self._additionals: List[Additional] = []
        self._description = ""
        self._finalized = False
        self._additional_seq = itertools.count(1)

        self.error: Optional[ItemError] = None
        self.batch_error: Optional[ItemError] = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def lifecycle(self) -> Lifecycle:
        return self._classifier.state

    @property
    def product_id(self) -> str:
        return self._product_id

    @property
    def is_custom(self) -> bool:
        return self._product_id == CUSTOM_PRODUCT_ID

    @property
    def parameters(self) -> List[Parameter]:
        return self._store.snapshot()

    @property
    def definitions(self) -> List[PromptDefinition]:
        return self._store.definitions

    @property
    def numeric_parameters(self) -> List[PromptDefinition]:
        """Definitions eligible as the multi-quantity parameter."""
        return [definition for definition in self._store.definitions if definition.is_numeric]

    @property
    def outputs(self) -> List[Output]:
        return list(self._outputs)

    @property
    def price_output(self) -> Optional[Output]:
        return find_price_output(self._outputs)

    @property
    def other_outputs(self) -> List[Output]:
        return other_outputs(self._outputs)

    @property
    def image_outputs(self) -> List[Output]:
        return image_outputs(self._outputs)

    @property
    def batch_rows(self) -> List[BatchRow]:
        return list(self._batch_rows)

    @property
    def multi(self) -> MultiQuantityConfig:
        return self._multi

    @property
    def additionals(self) -> List[Additional]:
        return list(self._additionals)

    @property
    def description(self) -> str:
        return self._description

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def final_price(self) -> float:
        return compute_final_price(
            self.price_output, self._additionals, self._batch_rows, self._multi.enabled
        )

    @property
    def is_complete(self) -> bool:
        return bool(self._product_id) and self.price_output is not None and self.final_price > 0

    def snapshot(self) -> LineItemSnapshot:
        """Build the canonical parent-facing snapshot from current state."""
        return LineItemSnapshot(
            product_id=self._product_id,
            prompts=self._store.snapshot(),
            outputs=list(self._outputs),
            price=self.final_price,
            multi=self._multi.to_snapshot(list(self._batch_rows)),
            item_description=self._description,
            item_additionals=[
                Additional(a.id, a.name, a.type, a.value, a.is_custom) for a in self._additionals
            ],
            is_finalized=self._finalized,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, initial_data: Optional[Dict[str, Any]] = None) -> None:
        """
        Mount the line item, restoring persisted data when supplied.

        Must be called from within a running event loop.
        """
        if self._phase is not SyncPhase.UNINITIALIZED:
            raise RuntimeError(f"Line item {self.item_id} has already been started")

        if not initial_data or not initial_data.get("productId"):
            self._classifier.reset()
            self._phase = SyncPhase.READY
            return

        self._phase = SyncPhase.INITIALIZING
        self._initializing = True
        try:
            decoded = decode_line_item(initial_data, self._multi.max_quantities)
        except SnapshotDecodeError as exc:
            logger.error(f"Could not restore line item {self.item_id}: {exc}")
            self._record_error(exc)
            self._classifier.reset()
            self._initializing = False
            self._phase = SyncPhase.READY
            return

        self._product_id = decoded.product_id
        self._store.replace(decoded.parameters)
        self._outputs = list(decoded.outputs)
        self._additionals = list(decoded.additionals)
        self._description = decoded.description
        self._finalized = decoded.is_finalized
        if decoded.multi:
            self._multi.load(decoded.multi.qty_prompt, decoded.multi.qty_inputs)
            self._sync_qty_mirror()

        if self.is_custom:
            self._store.update_definitions(CUSTOM_DEFINITIONS)
            self._classifier.mark_edited()
        else:
            self._classifier.mark_loaded()

        self._debounced = self._store.values()
        self._emitter.prime(self.snapshot())
        self._initializing = False
        self._phase = SyncPhase.READY
        logger.info(
            f"Restored line item {self.item_id}: product={self._product_id} "
            f"parameters={len(self._store)}"
        )

        self._spawn(self._run_cycle(self._debounced, forced=decoded.needs_recalculation))
        self._schedule_batch()

    def select_product(self, product_id: str) -> None:
        """Switch the line item to another product, discarding all derived state."""
        product_id = str(product_id or "")
        if product_id == self._product_id:
            return

        self._teardown()
        self._product_id = product_id
        self._phase = SyncPhase.READY
        if not product_id:
            return

        if self.is_custom:
            self._store.update_definitions(CUSTOM_DEFINITIONS)
            self._store.set(CUSTOM_QUANTITY_ID, 1)
            self._store.set(CUSTOM_UNIT_PRICE_ID, 0)
            self._classifier.mark_edited()
            self._debounced = self._store.values()
            self._apply_custom()
            self._emit()
            return

        product = find_product(self._products, product_id)
        if product is not None:
            self._description = product.display_name

        self._spawn(self._run_cycle({}, forced=False))

    def update_products(self, products: Iterable[Product]) -> None:
        self._products = list(products)

    def _teardown(self) -> None:
        """Reset every product-specific piece of state to a pristine new item."""
        logger.debug(f"Tearing down line item {self.item_id} (product {self._product_id or '-'})")
        self._gate.cancel()
        self._generation += 1
        self._batch_generation += 1
        self._store.clear()
        self._debounced = {}
        self._outputs = []
        self._batch_rows = []
        self._additionals = []
        self._description = ""
        self._finalized = False
        self._multi.reset()
        self._classifier.reset()
        self.error = None
        self.batch_error = None

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def set_parameter(self, param_id: str, value: Any, label: Optional[str] = None) -> None:
        """Record a user edit and (re)start the debounce window."""
        if not self._product_id:
            raise RuntimeError("Select a product before editing its parameters")
        if self.is_custom and param_id not in (CUSTOM_QUANTITY_ID, CUSTOM_UNIT_PRICE_ID):
            raise ValueError(f"Custom products only accept {CUSTOM_QUANTITY_ID} and {CUSTOM_UNIT_PRICE_ID}")

        self._store.set(param_id, value, label)
        self._classifier.on_user_edit()
        if param_id == self._multi.qty_prompt:
            self._multi.sync_first(value)
        self._gate.observe(self._store.values())

    def set_custom_values(
        self, quantity: Optional[float] = None, unit_price: Optional[float] = None
    ) -> None:
        if quantity is not None:
            self.set_parameter(CUSTOM_QUANTITY_ID, quantity)
        if unit_price is not None:
            self.set_parameter(CUSTOM_UNIT_PRICE_ID, unit_price)

    def set_description(self, description: str) -> None:
        self._description = description
        self._emit()

    def force_recompute(self) -> None:
        """Recompute now with the current values, bypassing the debounce window."""
        if not self._product_id:
            return
        self._gate.cancel()
        self._debounced = self._store.values()
        self._spawn(self._run_cycle(self._debounced, forced=True))
        self._schedule_batch()

    def finish_edit(self) -> None:
        self._finalized = True
        self._emit()
        if self._parent is not None:
            self._parent.on_finish_edit(self.item_id)

    def reopen(self) -> None:
        self._finalized = False
        self._emit()

    def remove(self) -> None:
        """Stop all work for this item and ask the parent to drop it."""
        self._gate.cancel()
        self._generation += 1
        self._batch_generation += 1
        for task in list(self._tasks):
            task.cancel()
        if self._parent is not None:
            self._parent.on_remove(self.item_id)

    # ------------------------------------------------------------------
    # Additionals
    # ------------------------------------------------------------------

    def add_catalog_additional(
        self, additional: CatalogAdditional, value: Optional[float] = None
    ) -> Additional:
        """Attach a catalog adjustment; the same one may be attached repeatedly."""
        added = Additional(
            id=f"{additional.id}_{next(self._additional_seq)}",
            name=additional.name,
            type=additional.type if additional.type in _ADDITIONAL_TYPES else NET_AMOUNT,
            value=float(additional.default_value if value is None else value),
        )
        self._additionals.append(added)
        self._emit()
        return added

    def add_custom_additional(self, name: str, value: float, type: str = NET_AMOUNT) -> Additional:
        if not name or not name.strip():
            raise ValueError("Custom adjustments need a name")
        if type not in _ADDITIONAL_TYPES:
            raise ValueError(f"Unknown adjustment type: {type}")
        added = Additional(
            id=f"custom_{next(self._additional_seq)}",
            name=name.strip(),
            type=type,
            value=float(value),
            is_custom=True,
        )
        self._additionals.append(added)
        self._emit()
        return added

    def update_additional_value(self, additional_id: str, value: float) -> None:
        for additional in self._additionals:
            if additional.id == additional_id:
                additional.value = float(value)
                self._emit()
                return
        raise KeyError(additional_id)

    def remove_additional(self, additional_id: str) -> None:
        self._additionals = [a for a in self._additionals if a.id != additional_id]
        self._emit()

    def set_additionals(self, additionals: Iterable[Additional]) -> None:
        self._additionals = list(additionals)
        self._emit()

    # ------------------------------------------------------------------
    # Multi-quantity configuration
    # ------------------------------------------------------------------

    def enable_multi(self, enabled: bool = True) -> None:
        self._multi.enabled = enabled
        if enabled:
            self._auto_select_qty_prompt()
            self._sync_qty_mirror()
            self._schedule_batch()
        else:
            self._batch_generation += 1
            self._batch_rows = []
            self.batch_error = None
        self._emit()

    def set_quantity_prompt(self, param_id: str) -> None:
        self._multi.qty_prompt = param_id
        self._sync_qty_mirror()
        self._schedule_batch()
        self._emit()

    def set_quantity_count(self, count: int) -> None:
        self._multi.set_count(count)
        self._schedule_batch()
        self._emit()

    def set_quantity(self, index: int, value: Any) -> None:
        """Edit quantity slot ``index`` (0-based); slot 0 is read-only."""
        self._multi.set_input(index, value)
        self._schedule_batch()
        self._emit()

    def _auto_select_qty_prompt(self) -> None:
        if self._multi.qty_prompt:
            return
        numeric = self.numeric_parameters
        if numeric:
            self._multi.qty_prompt = numeric[0].id

    def _sync_qty_mirror(self) -> None:
        parameter = self._store.get(self._multi.qty_prompt) if self._multi.qty_prompt else None
        if parameter is not None:
            self._multi.sync_first(parameter.value)

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        """Wait until no debounce timer is pending and no fetch is running."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            timer = self._gate.pending_task
            if timer is not None:
                pending.append(timer)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Cancel every pending timer and task owned by this item."""
        self._gate.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Fetch cycles
    # ------------------------------------------------------------------

    def _on_debounced(self, values: Dict[str, Any]) -> None:
        self._debounced = values
        self._spawn(self._run_cycle(values, forced=False))
        self._schedule_batch()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run_cycle(self, values: Dict[str, Any], forced: bool) -> None:
        bind_line_item(self.item_id)
        if self.is_custom:
            self._apply_custom()
            self._emit()
            return

        product_id = self._product_id
        if not product_id:
            return

        shape = self._classifier.decide(bool(values), forced)
        if shape is None:
            logger.debug(f"No pricing request needed for item {self.item_id}")
            return

        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        self._phase = SyncPhase.AWAITING_RECOMPUTE

        try:
            with stage_span(
                shape.value,
                item_id=self.item_id,
                product_id=product_id,
                parameter_count=len(values),
            ):
                if shape is RequestShape.DESCRIBE:
                    response = await self._describe(product_id, generation)
                else:
                    response = await self._recompute(product_id, values, generation)

            if response is not None and self._is_current(generation):
                self._outputs = list(response.outputs)
                self.error = None
        except asyncio.CancelledError:
            raise
        except QuoteSyncError as exc:
            if self._is_current(generation):
                self._record_error(exc)
        except Exception as exc:
            logger.error(
                f"Pricing cycle failed for item {self.item_id}: {exc}",
                exc_info=True,
                extra={"item_id": self.item_id, "error_type": type(exc).__name__},
            )
            if self._is_current(generation):
                self._record_error(exc)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._phase = SyncPhase.READY

        self._emit()

    async def _describe(self, product_id: str, generation: int) -> Optional[PricingResponse]:
        response = await self._client.describe(product_id)
        if not self._is_current(generation):
            logger.debug(f"Discarding superseded describe for item {self.item_id}")
            return None

        self._store.update_definitions(response.prompts)
        self._auto_select_qty_prompt()

        if not self._classifier.accepts_defaults:
            return response

        written = self._store.apply_defaults(response.prompts)
        self._classifier.on_defaults_applied()
        values = self._store.values()
        self._debounced = values
        logger.info(f"Item {self.item_id}: accepted {written} default value(s) for {product_id}")
        if not values:
            return response

        self._sync_qty_mirror()
        self._schedule_batch()
        return await self._recompute(product_id, values, generation)

    async def _recompute(
        self, product_id: str, values: Dict[str, Any], generation: int
    ) -> Optional[PricingResponse]:
        if needs_reconciliation(values):
            values = await self._reconcile(product_id, generation)
            if values is None:
                return None

        response = await self._client.recompute(product_id, values)
        if not self._is_current(generation):
            logger.debug(f"Discarding superseded recompute for item {self.item_id}")
            return None

        self._store.update_definitions(response.prompts)
        self._auto_select_qty_prompt()
        return response

    async def _reconcile(self, product_id: str, generation: int) -> Optional[Dict[str, Any]]:
        """Re-key stored parameters under canonical ids before resubmitting."""
        with stage_span("reconcile", item_id=self.item_id, product_id=product_id):
            response = await self._client.describe(product_id)
            if not self._is_current(generation):
                return None

            self._store.update_definitions(response.prompts)
            remapped, dropped = remap_parameters(self._store.snapshot(), response.prompts)
            self._store.replace(remapped)

        values = self._store.values()
        self._debounced = values
        logger.info(
            f"Item {self.item_id}: reconciled {len(remapped)} parameter id(s), dropped {len(dropped)}"
        )
        self._sync_qty_mirror()
        self._schedule_batch()
        return values

    def _apply_custom(self) -> None:
        quantity = self._custom_number(CUSTOM_QUANTITY_ID)
        unit_price = self._custom_number(CUSTOM_UNIT_PRICE_ID)
        self._outputs = [
            Output(name="Quantity", type="quantity", value=quantity),
            Output(name="Unit price", type="unit_price", value=unit_price),
            Output(name="Price", type="price", value=quantity * unit_price),
        ]
        self.error = None

    def _custom_number(self, param_id: str) -> float:
        parameter = self._store.get(param_id)
        number = parse_amount(parameter.value) if parameter else 0.0
        return 0.0 if number != number else number

    # ------------------------------------------------------------------
    # Batch quantities
    # ------------------------------------------------------------------

    def _schedule_batch(self) -> None:
        if self.is_custom or not self._product_id:
            return
        if not self._multi.is_active:
            self._batch_generation += 1
            self._batch_rows = []
            return

        values = dict(self._debounced)
        if needs_reconciliation(values):
            # The primary cycle reconciles ids first and reschedules the batch.
            return

        self._batch_generation += 1
        self._spawn(
            self._run_batch(
                self._product_id,
                values,
                self._multi.qty_prompt,
                self._multi.quantities(),
                self._batch_generation,
            )
        )

    async def _run_batch(
        self,
        product_id: str,
        values: Dict[str, Any],
        qty_prompt: str,
        quantities: List[Any],
        generation: int,
    ) -> None:
        bind_line_item(self.item_id)
        try:
            with stage_span(
                "batch", item_id=self.item_id, product_id=product_id, quantities=len(quantities)
            ):
                rows = await self._batch_engine.run(product_id, values, qty_prompt, quantities)
        except asyncio.CancelledError:
            raise
        except BatchQuantityError as exc:
            if generation == self._batch_generation:
                logger.warning(f"Batch pricing failed for item {self.item_id}: {exc}")
                self._fail_batch(str(exc))
            return
        except Exception as exc:
            logger.error(
                f"Batch pricing crashed for item {self.item_id}: {exc}",
                exc_info=True,
                extra={"item_id": self.item_id, "error_type": type(exc).__name__},
            )
            if generation == self._batch_generation:
                self._fail_batch(f"Multi-quantity pricing failed: {exc}")
            return

        if generation != self._batch_generation:
            return
        self._batch_rows = rows
        self.batch_error = None
        self._emit()

    def _fail_batch(self, message: str) -> None:
        self._batch_rows = []
        self.batch_error = ItemError(ErrorKind.BATCH, message)
        increment_errors(ErrorKind.BATCH.value, self.item_id)
        self._emit()

    # ------------------------------------------------------------------
    # Errors and emission
    # ------------------------------------------------------------------

    def _record_error(self, exc: Exception) -> None:
        kind = _error_kind(exc)
        self.error = ItemError(kind, str(exc))
        increment_errors(kind.value, self.item_id)
        logger.warning(f"Item {self.item_id} entered error state ({kind.value}): {exc}")

    def _emit(self) -> bool:
        try:
            return self._emitter.emit(
                self.snapshot(),
                initializing=self._initializing,
                fetch_in_flight=self._in_flight > 0,
                custom=self.is_custom,
            )
        except Exception:
            logger.exception(f"Parent aggregator rejected snapshot for item {self.item_id}")
            return False
