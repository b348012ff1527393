"""
Administrative command line for the invoicing core.

Usage:
    invoicing init-db
    invoicing show INV-001000
    invoicing show INV-001000 --json
    invoicing overdue --today 2030-02-01
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

from invoicing import __version__
from invoicing.config import Settings, get_settings
from invoicing.domain import InvoiceAggregate
from invoicing.domain.repository import InvoiceNotFoundError
from invoicing.infrastructure.database import close_db, init_db
from invoicing.infrastructure.repository import SqlAlchemyInvoiceRepository
from invoicing.schemas import InvoiceSnapshot
from invoicing.services import InvoiceService

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the command line."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


def format_invoice(invoice: InvoiceAggregate) -> str:
    """Render an invoice as a plain-text summary."""
    lines = [
        f"Invoice {invoice.number} [{invoice.status.value}]",
        f"  Client:   {invoice.client_id}",
        f"  Type:     {invoice.invoice_type.value}"
        + (f" ({invoice.frequency.value})" if invoice.frequency else ""),
        f"  Due date: {invoice.due_date.isoformat()}",
        "",
    ]
    for item in invoice.items:
        lines.append(
            f"  {item.description:<40} {item.quantity:>8} x "
            f"{item.unit_price.to_display_string():>14}  "
            f"{item.tax_rate.to_display_string():<22} "
            f"{item.calculate_total().to_display_string():>14}"
        )
    lines.append("")
    lines.append(f"  Subtotal:    {invoice.calculate_subtotal().to_display_string()}")
    for tax_line in invoice.tax_breakdown():
        lines.append(
            f"  {tax_line.tax_rate.to_display_string()}: {tax_line.amount.to_display_string()}"
        )
    lines.append(f"  Total tax:   {invoice.calculate_total_tax().to_display_string()}")
    lines.append(f"  Total:       {invoice.calculate_total().to_display_string()}")
    if invoice.paid_amount is not None:
        lines.append(f"  Paid:        {invoice.paid_amount.to_display_string()}")
    lines.append(f"  Balance due: {invoice.balance_due().to_display_string()}")
    if invoice.void_reason:
        lines.append(f"  Void reason: {invoice.void_reason}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoicing",
        description="Inspect and maintain the invoice database",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from INVOICING_LOG_LEVEL)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    show = commands.add_parser("show", help="Show one invoice with its totals")
    show.add_argument("number", help="Invoice number, e.g. INV-001000")
    show.add_argument("--json", action="store_true", help="Print the invoice snapshot as JSON")

    overdue = commands.add_parser("overdue", help="List sent invoices past their due date")
    overdue.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD, default: today in UTC)",
    )
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one command against the configured database."""
    try:
        if args.command == "init-db":
            await init_db()
            print("Database tables created")
            return 0

        service = InvoiceService(SqlAlchemyInvoiceRepository(), settings=settings)

        if args.command == "show":
            invoice = await service.get_invoice_by_number(args.number)
            if args.json:
                print(InvoiceSnapshot.from_domain(invoice).model_dump_json(indent=2))
            else:
                print(format_invoice(invoice))
            return 0

        if args.command == "overdue":
            invoices = await service.list_overdue(args.today)
            if not invoices:
                print("No overdue invoices")
            for invoice in invoices:
                print(
                    f"{invoice.number}  due {invoice.due_date.isoformat()}  "
                    f"client {invoice.client_id}  "
                    f"balance {invoice.balance_due().to_display_string()}"
                )
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)
    logger.debug(f"invoicing v{__version__}")

    try:
        return asyncio.run(run(args, settings))
    except InvoiceNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
