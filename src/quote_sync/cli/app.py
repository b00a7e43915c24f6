"""Quote Sync - CLI entry point."""

import asyncio
import logging
import os
import uuid

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from quote_sync.core.config import get_debounce_seconds, get_max_quantities, load_environment
from quote_sync.core.models import CUSTOM_PRODUCT_ID
from quote_sync.core.synchronizer import LineItemSynchronizer
from quote_sync.cli.interface import ConsoleAggregator
from quote_sync.cli.prompts import (
    print_batch_rows,
    print_error,
    print_final_message,
    print_header,
    print_help,
    print_outputs,
    print_parameters,
    print_price,
    print_products,
)
from quote_sync.interfaces.context import PricingContext
from quote_sync.shared.async_utils import run_coroutine
from quote_sync.shared.errors import QuoteSyncError
from quote_sync.shared.logging import setup_logging
from quote_sync.shared.metrics import configure_metrics, increment_errors
from quote_sync.shared.tracing import configure_tracing

logger = logging.getLogger(__name__)


def _print_state(sync: LineItemSynchronizer) -> None:
    print_parameters(sync.parameters)
    print_outputs(sync.other_outputs)
    print_batch_rows(sync.batch_rows)
    if sync.error:
        print_error(f"{sync.error.kind.value}: {sync.error.message}")
    if sync.batch_error:
        print_error(f"quantities: {sync.batch_error.message}")
    print_price(sync.final_price)


def apply_command(sync: LineItemSynchronizer, line: str) -> bool:
    """
    Apply one console command to the line item.

    Returns False when the user finished editing.

    Raises:
        ValueError: If the command is malformed
    """
    line = line.strip()
    if line == "done":
        sync.finish_edit()
        return False
    if line == "help":
        print_help()
        return True
    if line == "show":
        _print_state(sync)
        return True
    if line == "refresh":
        sync.force_recompute()
        return True

    if "=" in line:
        param_id, _, value = line.partition("=")
        if not param_id.strip():
            raise ValueError("Parameter id is missing")
        sync.set_parameter(param_id.strip(), value.strip())
        return True

    command, _, rest = line.partition(" ")
    rest = rest.strip()
    if command == "desc":
        sync.set_description(rest)
    elif command == "add":
        name, _, value = rest.rpartition(" ")
        sync.add_custom_additional(name, float(value.replace(",", ".")))
    elif command == "qty":
        _apply_qty_command(sync, rest)
    else:
        raise ValueError(f"Unknown command: {line!r} (type 'help')")
    return True


def _apply_qty_command(sync: LineItemSynchronizer, args: str) -> None:
    parts = args.split()
    if parts == ["on"]:
        sync.enable_multi(True)
    elif parts == ["off"]:
        sync.enable_multi(False)
    elif len(parts) == 2 and parts[0] == "param":
        sync.set_quantity_prompt(parts[1])
    elif len(parts) == 2 and parts[0] == "count":
        sync.set_quantity_count(int(parts[1]))
    elif len(parts) == 2 and parts[0].isdigit():
        sync.set_quantity(int(parts[0]) - 1, parts[1])
    else:
        raise ValueError("Usage: qty on|off | qty param <id> | qty count <n> | qty <slot> <value>")


def _choose_product(products) -> str:
    print_products(products)
    while True:
        choice = input("Product: ").strip().lower()
        if choice == "c":
            return CUSTOM_PRODUCT_ID
        if choice.isdigit() and 1 <= int(choice) <= len(products):
            return products[int(choice) - 1].id
        print("Please enter a number from the list or 'c'.")


async def run_cli_workflow() -> None:
    """Price one line item interactively."""
    quote = ConsoleAggregator()

    async with PricingContext() as ctx:
        products = await ctx.catalog.list_active_products()
        product_id = _choose_product(products)

        item_id = str(uuid.uuid4())
        sync = LineItemSynchronizer(
            item_id,
            ctx.client,
            quote,
            products=products,
            debounce_seconds=get_debounce_seconds(),
            max_quantities=get_max_quantities(),
        )
        sync.start()
        quote.begin_edit(item_id)
        sync.select_product(product_id)
        await sync.settle()

        print_header(sync.description or "Custom product")
        print_help()
        _print_state(sync)

        try:
            while True:
                line = input("> ")
                if not line.strip():
                    continue
                try:
                    keep_going = apply_command(sync, line)
                except (ValueError, IndexError, KeyError, RuntimeError) as e:
                    print_error(str(e))
                    continue

                await sync.settle()
                if not keep_going:
                    break
                _print_state(sync)
        finally:
            await sync.close()

    print_final_message(quote.total())


async def main() -> None:
    """Main entry point for CLI."""
    load_environment()

    # Resolve desired log level from environment (default WARNING keeps the console readable)
    level_name = os.getenv("APP_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    setup_logging(name="quote_sync_cli", level=level, service_name="quote-sync-cli")
    configure_tracing(service_name="quote-sync-cli")
    configure_metrics()

    print("Quote Sync")
    print("=" * 60)

    tracer = trace.get_tracer("quote_sync.session")
    with tracer.start_as_current_span(
        "session.cli",
        kind=SpanKind.CLIENT,
        attributes={"session.type": "cli"},
    ):
        try:
            await run_cli_workflow()
        except QuoteSyncError as e:
            print_error(str(e))
            increment_errors(type(e).__name__)
        except (EOFError, KeyboardInterrupt):
            print()


def run() -> None:
    """Console script entry point."""
    run_coroutine(main())


if __name__ == "__main__":
    run()
