"""
Invoice use-case orchestrator.

Coordinates the load -> mutate -> save cycle for invoice aggregates:
1. Allocate a unique invoice number
2. Load the aggregate under a per-invoice lock
3. Apply one domain operation
4. Save with an optimistic version check

This is the primary interface for callers that change invoices.
"""

import asyncio
import logging
import weakref
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable

from invoicing.config import Settings, get_settings
from invoicing.domain import (
    BusinessRuleViolation,
    InvoiceAggregate,
    InvoiceFrequency,
    InvoiceItem,
    InvoiceNumber,
    InvoiceNumberSequence,
    InvoiceType,
    Money,
    TaxRate,
)
from invoicing.domain.repository import (
    DuplicateInvoiceNumberError,
    InvoiceNotFoundError,
    InvoiceRepository,
)

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Runs invoice operations against a repository.

    Operations on the same invoice id are serialized within this process
    by an asyncio.Lock; the repository's version check catches writers in
    other processes. A failed domain operation is never saved.

    Example:
        service = InvoiceService(SqlAlchemyInvoiceRepository())

        invoice = await service.create_invoice(
            client_id="client-1",
            issued_by="user-1",
            currency="USD",
            due_date=date(2030, 1, 31),
            items=[InvoiceItem("Consulting", 2, Money(Decimal("100"), "USD"))],
        )
        await service.finalize(invoice.id)
        await service.send(invoice.id)
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        settings: Settings | None = None,
        sequence: InvoiceNumberSequence | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            repository: Storage backend for invoices
            settings: Numbering configuration. Uses environment if None.
            sequence: Counter for generated numbers; the process-wide
                one if None
        """
        self._repository = repository
        self._settings = settings or get_settings()
        self._sequence = sequence
        # Entries vanish once no operation holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def _allocate_number(self, prefix: str) -> InvoiceNumber:
        """Generate numbers until one is not already stored."""
        attempts = self._settings.number_allocation_attempts
        for _ in range(attempts):
            number = InvoiceNumber.generate(prefix, self._sequence)
            if not await self._repository.exists_by_number(number.value):
                return number
            logger.warning(f"Invoice number {number} already taken, trying next")
        raise BusinessRuleViolation(
            f"Could not allocate a unique invoice number with prefix {prefix} "
            f"after {attempts} attempts"
        )

    async def _store_new(
        self,
        prefix: str,
        build: Callable[[InvoiceNumber], InvoiceAggregate],
    ) -> InvoiceAggregate:
        """
        Build and save a new invoice under a freshly allocated number.

        Another writer can store the same number between the existence
        check and the save; the next number is tried when that happens.
        """
        attempts = self._settings.number_allocation_attempts
        for _ in range(attempts):
            number = await self._allocate_number(prefix)
            invoice = build(number)
            try:
                await self._repository.save(invoice)
            except DuplicateInvoiceNumberError:
                logger.warning(f"Invoice number {number} was taken before save, trying next")
                continue
            return invoice
        raise BusinessRuleViolation(
            f"Could not store an invoice with a unique number with prefix {prefix} "
            f"after {attempts} attempts"
        )

    def _lock_for(self, invoice_id: str) -> asyncio.Lock:
        lock = self._locks.get(invoice_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[invoice_id] = lock
        return lock

    async def create_invoice(
        self,
        *,
        client_id: str,
        issued_by: str,
        currency: str,
        due_date: date,
        invoice_type: InvoiceType = InvoiceType.STANDARD,
        frequency: InvoiceFrequency | None = None,
        project_id: str | None = None,
        notes: str | None = None,
        items: Iterable[InvoiceItem] = (),
        today: date | None = None,
    ) -> InvoiceAggregate:
        """Create and store a draft invoice with a freshly allocated number."""
        items = list(items)

        def build(number: InvoiceNumber) -> InvoiceAggregate:
            invoice = InvoiceAggregate.create(
                number=number,
                client_id=client_id,
                issued_by=issued_by,
                currency=currency,
                due_date=due_date,
                invoice_type=invoice_type,
                project_id=project_id,
                frequency=frequency,
                notes=notes,
                today=today,
            )
            for item in items:
                invoice.add_item(item)
            return invoice

        invoice = await self._store_new(self._settings.invoice_number_prefix, build)
        logger.info(f"Invoice created: {invoice.number} for client {client_id}")
        return invoice

    async def get_invoice(self, invoice_id: str) -> InvoiceAggregate:
        invoice = await self._repository.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice with ID {invoice_id} not found")
        return invoice

    async def get_invoice_by_number(self, number: str) -> InvoiceAggregate:
        invoice = await self._repository.find_by_number(number)
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice with number {number} not found")
        return invoice

    async def list_overdue(self, today: date | None = None) -> list[InvoiceAggregate]:
        return await self._repository.find_overdue(today)

    async def _apply(
        self,
        invoice_id: str,
        operation: str,
        change: Callable[[InvoiceAggregate], None],
    ) -> InvoiceAggregate:
        """Load, change and save one invoice while holding its lock."""
        async with self._lock_for(invoice_id):
            invoice = await self.get_invoice(invoice_id)
            change(invoice)
            await self._repository.save(invoice)

        logger.info(f"Invoice {invoice.number} {operation}: status={invoice.status.value}")
        return invoice

    async def add_item(self, invoice_id: str, item: InvoiceItem) -> InvoiceAggregate:
        return await self._apply(invoice_id, "item added", lambda invoice: invoice.add_item(item))

    async def remove_item(self, invoice_id: str, item_id: str) -> InvoiceAggregate:
        return await self._apply(
            invoice_id, "item removed", lambda invoice: invoice.remove_item(item_id)
        )

    async def update_item(
        self,
        invoice_id: str,
        item_id: str,
        *,
        description: str | None = None,
        quantity: Decimal | int | str | None = None,
        unit_price: Money | None = None,
        tax_rate: TaxRate | None = None,
    ) -> InvoiceAggregate:
        def change(invoice: InvoiceAggregate) -> None:
            invoice.update_item(
                item_id,
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=tax_rate,
            )

        return await self._apply(invoice_id, "item updated", change)

    async def finalize(self, invoice_id: str, now: datetime | None = None) -> InvoiceAggregate:
        return await self._apply(invoice_id, "finalized", lambda invoice: invoice.finalize(now))

    async def send(self, invoice_id: str, now: datetime | None = None) -> InvoiceAggregate:
        """Mark the invoice sent. Delivery to the client happens elsewhere."""
        return await self._apply(invoice_id, "sent", lambda invoice: invoice.send(now))

    async def record_payment(
        self,
        invoice_id: str,
        amount: Money,
        now: datetime | None = None,
    ) -> InvoiceAggregate:
        return await self._apply(
            invoice_id,
            f"payment of {amount.to_display_string()} recorded",
            lambda invoice: invoice.record_payment(amount, now),
        )

    async def mark_as_paid(
        self,
        invoice_id: str,
        amount: Money,
        now: datetime | None = None,
    ) -> InvoiceAggregate:
        return await self._apply(
            invoice_id, "marked as paid", lambda invoice: invoice.mark_as_paid(amount, now)
        )

    async def void(
        self,
        invoice_id: str,
        reason: str,
        now: datetime | None = None,
    ) -> InvoiceAggregate:
        return await self._apply(invoice_id, "voided", lambda invoice: invoice.void(reason, now))

    async def prorate(
        self,
        invoice_id: str,
        start_date: date | datetime,
        end_date: date | datetime,
        today: date | None = None,
    ) -> InvoiceAggregate:
        """
        Create and store a prorated standard invoice from a recurring one.

        The source invoice is read but not changed. A rejected proration
        does not use up a number.

        Returns:
            The new prorated invoice
        """
        source = await self.get_invoice(invoice_id)
        source.check_proration(start_date, end_date, today)
        prorated = await self._store_new(
            self._settings.proration_number_prefix,
            lambda number: source.prorate(start_date, end_date, number=number, today=today),
        )
        logger.info(
            f"Invoice {prorated.number} prorated from {source.number} "
            f"for {start_date} to {end_date}"
        )
        return prorated
