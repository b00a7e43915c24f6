"""CLI prompts and formatting utilities."""

import math
from typing import Iterable, List

from quote_sync.core.models import BatchRow, Output, Parameter, Product


def print_header(title: str) -> None:
    """Print a formatted section header."""
    print(f"\n{'=' * 60}")
    print(f"=== {title}")
    print(f"{'=' * 60}\n")


def format_amount(value: float) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    return f"{value:,.2f}"


def print_products(products: List[Product]) -> None:
    """Print the numbered product menu."""
    print_header("Products")
    for index, product in enumerate(products, start=1):
        print(f"  {index:>3}. {product.display_name}  ({product.id})")
    print("    c. Custom product (manual quantity and unit price)")
    print()


def print_parameters(parameters: Iterable[Parameter]) -> None:
    print("Parameters:")
    for parameter in parameters:
        print(f"  {parameter.id} [{parameter.label}] = {parameter.value!r}")


def print_outputs(outputs: Iterable[Output]) -> None:
    outputs = list(outputs)
    if not outputs:
        return
    print("Outputs:")
    for output in outputs:
        print(f"  {output.name}: {output.value}")


def print_batch_rows(rows: List[BatchRow]) -> None:
    if not rows:
        return
    print("Quantities:")
    print(f"  {'qty':>10}  {'total':>14}  {'unit':>14}")
    for row in rows:
        print(f"  {row.qty:>10}  {format_amount(row.total_price):>14}  {format_amount(row.unit_price):>14}")


def print_price(price: float) -> None:
    print(f"\n💶 Price: {format_amount(price)}\n", flush=True)


def print_error(error: str) -> None:
    """Print error message."""
    print(f"❌ Error: {error}\n", flush=True)


def print_help() -> None:
    print(
        "Commands:\n"
        "  <id>=<value>        set a parameter\n"
        "  qty on|off          toggle multi-quantity pricing\n"
        "  qty param <id>      choose the quantity parameter\n"
        "  qty count <n>       number of quantity slots\n"
        "  qty <slot> <value>  set quantity slot (2..n; slot 1 follows the parameter)\n"
        "  add <name> <value>  add a custom net adjustment\n"
        "  desc <text>         set the line description\n"
        "  refresh             recompute now\n"
        "  show                print the current state\n"
        "  done                finish editing and print the quote total\n"
    )


def print_final_message(total: float) -> None:
    """Print final success message."""
    print("=" * 60)
    print(f"Quote total: {format_amount(total)}")
    print("=" * 60)
