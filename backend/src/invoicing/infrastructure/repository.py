"""
Invoice repository implementations.

Two backends share the InvoiceRepository contract:
- InMemoryInvoiceRepository: JSON snapshots in a dict, for tests and
  single-process tools
- SqlAlchemyInvoiceRepository: async SQLAlchemy over the invoices and
  invoice_items tables

Design Decisions:
- Both backends store state, never live objects, so an aggregate loaded
  twice gives two independent instances
- Saves are version-checked; a stale aggregate raises
  ConcurrencyConflictError and nothing is written
- Invoice numbers are unique; saving a second invoice with a taken
  number raises DuplicateInvoiceNumberError. The SQL backend leaves
  this to the unique constraint, which also catches writers in other
  processes
- Failures are logged and re-raised
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invoicing.domain import (
    InvoiceAggregate,
    InvoiceItem,
    InvoiceStatus,
    Money,
    TaxRate,
)
from invoicing.domain.invoice import PAYABLE_STATUSES
from invoicing.domain.repository import (
    ConcurrencyConflictError,
    DuplicateInvoiceNumberError,
    InvoiceRepository,
)
from invoicing.schemas import InvoiceSnapshot

from .database import InvoiceItemRecord, InvoiceRecord, get_session_factory

logger = logging.getLogger(__name__)


def _today() -> date:
    return datetime.now(timezone.utc).date()


class InMemoryInvoiceRepository(InvoiceRepository):
    """
    Dictionary-backed repository.

    Invoices are kept as JSON-compatible snapshot dicts keyed by id, in
    the order they were first saved.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}

    def _load(self, data: dict[str, Any]) -> InvoiceAggregate:
        return InvoiceSnapshot.model_validate(data).to_domain()

    def _load_where(self, predicate: Callable[[dict[str, Any]], bool]) -> list[InvoiceAggregate]:
        return [self._load(data) for data in self._snapshots.values() if predicate(data)]

    async def save(self, invoice: InvoiceAggregate) -> None:
        expected = invoice.version
        stored = self._snapshots.get(invoice.id)
        actual = stored["version"] if stored is not None else None
        if (stored is None and expected != 0) or (stored is not None and actual != expected):
            logger.warning(f"Stale save rejected for invoice {invoice.id}")
            raise ConcurrencyConflictError(invoice.id, expected, actual)

        number = invoice.number.value
        for other_id, data in self._snapshots.items():
            if other_id != invoice.id and data["number"] == number:
                raise DuplicateInvoiceNumberError(number)

        snapshot = InvoiceSnapshot.from_domain(invoice).model_copy(update={"version": expected + 1})
        self._snapshots[invoice.id] = snapshot.model_dump(mode="json")
        invoice.version = expected + 1
        logger.debug(f"Invoice saved: {number} (version {invoice.version})")

    async def find_by_id(self, invoice_id: str) -> InvoiceAggregate | None:
        data = self._snapshots.get(invoice_id)
        return self._load(data) if data is not None else None

    async def find_by_number(self, number: str) -> InvoiceAggregate | None:
        matches = self._load_where(lambda data: data["number"] == number)
        return matches[0] if matches else None

    async def find_by_client_id(self, client_id: str) -> list[InvoiceAggregate]:
        return self._load_where(lambda data: data["client_id"] == client_id)

    async def find_by_status(self, status: InvoiceStatus) -> list[InvoiceAggregate]:
        return self._load_where(lambda data: data["status"] == status.value)

    async def find_overdue(self, today: date | None = None) -> list[InvoiceAggregate]:
        today = today or _today()
        overdue = [
            invoice
            for invoice in map(self._load, self._snapshots.values())
            if invoice.is_overdue(today)
        ]
        return sorted(overdue, key=lambda invoice: invoice.due_date)

    async def find_drafts_by_user(self, user_id: str) -> list[InvoiceAggregate]:
        return self._load_where(
            lambda data: data["issued_by"] == user_id
            and data["status"] == InvoiceStatus.DRAFT.value
        )

    async def exists_by_number(self, number: str) -> bool:
        return any(data["number"] == number for data in self._snapshots.values())

    async def delete(self, invoice_id: str) -> bool:
        deleted = self._snapshots.pop(invoice_id, None) is not None
        if deleted:
            logger.info(f"Invoice deleted: {invoice_id}")
        return deleted


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _invoice_columns(invoice: InvoiceAggregate) -> dict[str, Any]:
    return {
        "number": invoice.number.value,
        "client_id": invoice.client_id,
        "project_id": invoice.project_id,
        "issued_by": invoice.issued_by,
        "type": invoice.invoice_type.value,
        "status": invoice.status.value,
        "currency": invoice.currency,
        "due_date": invoice.due_date,
        "frequency": invoice.frequency.value if invoice.frequency else None,
        "notes": invoice.notes,
        "finalized_at": invoice.finalized_at,
        "sent_at": invoice.sent_at,
        "paid_at": invoice.paid_at,
        "voided_at": invoice.voided_at,
        "paid_amount": str(invoice.paid_amount.amount) if invoice.paid_amount else None,
        "void_reason": invoice.void_reason,
    }


def _item_records(invoice: InvoiceAggregate) -> list[InvoiceItemRecord]:
    return [
        InvoiceItemRecord(
            id=item.id,
            invoice_id=invoice.id,
            position=position,
            description=item.description,
            quantity=str(item.quantity),
            unit_price=str(item.unit_price.amount),
            tax_rate=str(item.tax_rate.rate),
            tax_classification=item.tax_rate.classification.name,
        )
        for position, item in enumerate(invoice.items)
    ]


def _to_domain(record: InvoiceRecord) -> InvoiceAggregate:
    """Rebuild an aggregate from a row and its item rows."""
    items = [
        InvoiceItem(
            id=row.id,
            description=row.description,
            quantity=_decimal(row.quantity),
            unit_price=Money(_decimal(row.unit_price), record.currency),
            tax_rate=TaxRate(_decimal(row.tax_rate), row.tax_classification),
        )
        for row in sorted(record.items, key=lambda row: row.position)
    ]
    return InvoiceAggregate(
        id=record.id,
        number=record.number,
        client_id=record.client_id,
        issued_by=record.issued_by,
        currency=record.currency,
        due_date=record.due_date,
        invoice_type=record.type,
        project_id=record.project_id,
        frequency=record.frequency,
        notes=record.notes,
        items=items,
        status=record.status,
        finalized_at=_as_utc(record.finalized_at),
        sent_at=_as_utc(record.sent_at),
        paid_at=_as_utc(record.paid_at),
        voided_at=_as_utc(record.voided_at),
        paid_amount=(
            Money(_decimal(record.paid_amount), record.currency)
            if record.paid_amount is not None
            else None
        ),
        void_reason=record.void_reason,
        version=record.version,
    )


class SqlAlchemyInvoiceRepository(InvoiceRepository):
    """
    Repository over SQLAlchemy async sessions.

    Each call opens its own session; save() runs in one transaction that
    writes the invoice row and replaces its item rows.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        """
        Args:
            session_factory: Session factory to use. Uses the configured
                database if None.
        """
        self._session_factory = session_factory or get_session_factory()

    async def save(self, invoice: InvoiceAggregate) -> None:
        expected = invoice.version
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if expected == 0:
                        self._insert(session, invoice)
                    else:
                        await self._update(session, invoice, expected)
        except IntegrityError as exc:
            conflict = await self._explain_integrity_error(invoice, expected)
            if conflict is None:
                logger.error(f"Failed to save invoice {invoice.number}: {exc}")
                raise
            raise conflict from exc
        except SQLAlchemyError as exc:
            logger.error(f"Failed to save invoice {invoice.number}: {exc}")
            raise

        invoice.version = expected + 1
        logger.info(f"Invoice saved: {invoice.number} (version {invoice.version})")

    def _insert(self, session: AsyncSession, invoice: InvoiceAggregate) -> None:
        """Stage a new invoice; the primary key and number constraints decide at commit."""
        record = InvoiceRecord(id=invoice.id, version=1, **_invoice_columns(invoice))
        record.items = _item_records(invoice)
        session.add(record)

    async def _explain_integrity_error(
        self,
        invoice: InvoiceAggregate,
        expected: int,
    ) -> Exception | None:
        """
        Map a constraint violation on save to a domain-level error.

        Another writer may have stored the same id or claimed the same
        number between our reads and the commit, so the current rows are
        read again in a fresh session.

        Returns:
            ConcurrencyConflictError if the id is already stored for a new
            invoice, DuplicateInvoiceNumberError if another invoice holds
            the number, or None for any other violation
        """
        async with self._session_factory() as session:
            stored_version = await session.scalar(
                select(InvoiceRecord.version).where(InvoiceRecord.id == invoice.id)
            )
            owner = await session.scalar(
                select(InvoiceRecord.id).where(InvoiceRecord.number == invoice.number.value)
            )

        if expected == 0 and stored_version is not None:
            logger.warning(f"Invoice {invoice.id} already stored, rejecting insert")
            return ConcurrencyConflictError(invoice.id, expected, stored_version)
        if owner is not None and owner != invoice.id:
            logger.warning(f"Invoice number {invoice.number} is taken by invoice {owner}")
            return DuplicateInvoiceNumberError(invoice.number.value)
        return None

    async def _update(self, session: AsyncSession, invoice: InvoiceAggregate, expected: int) -> None:
        result = await session.execute(
            update(InvoiceRecord)
            .where(InvoiceRecord.id == invoice.id, InvoiceRecord.version == expected)
            .values(
                version=expected + 1,
                updated_at=datetime.now(timezone.utc),
                **_invoice_columns(invoice),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            actual = await session.scalar(
                select(InvoiceRecord.version).where(InvoiceRecord.id == invoice.id)
            )
            logger.warning(f"Stale save rejected for invoice {invoice.id}")
            raise ConcurrencyConflictError(invoice.id, expected, actual)

        await session.execute(
            delete(InvoiceItemRecord).where(InvoiceItemRecord.invoice_id == invoice.id)
        )
        session.add_all(_item_records(invoice))

    async def _find(self, *criteria, order_by=None) -> list[InvoiceAggregate]:
        statement = select(InvoiceRecord).where(*criteria)
        statement = statement.order_by(order_by if order_by is not None else InvoiceRecord.created_at)
        try:
            async with self._session_factory() as session:
                records = (await session.scalars(statement)).all()
                return [_to_domain(record) for record in records]
        except SQLAlchemyError as exc:
            logger.error(f"Invoice query failed: {exc}")
            raise

    async def find_by_id(self, invoice_id: str) -> InvoiceAggregate | None:
        found = await self._find(InvoiceRecord.id == invoice_id)
        return found[0] if found else None

    async def find_by_number(self, number: str) -> InvoiceAggregate | None:
        found = await self._find(InvoiceRecord.number == number)
        return found[0] if found else None

    async def find_by_client_id(self, client_id: str) -> list[InvoiceAggregate]:
        return await self._find(InvoiceRecord.client_id == client_id)

    async def find_by_status(self, status: InvoiceStatus) -> list[InvoiceAggregate]:
        return await self._find(InvoiceRecord.status == status.value)

    async def find_overdue(self, today: date | None = None) -> list[InvoiceAggregate]:
        today = today or _today()
        return await self._find(
            InvoiceRecord.status.in_([status.value for status in PAYABLE_STATUSES]),
            InvoiceRecord.due_date < today,
            order_by=InvoiceRecord.due_date,
        )

    async def find_drafts_by_user(self, user_id: str) -> list[InvoiceAggregate]:
        return await self._find(
            InvoiceRecord.issued_by == user_id,
            InvoiceRecord.status == InvoiceStatus.DRAFT.value,
        )

    async def exists_by_number(self, number: str) -> bool:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(InvoiceRecord).where(InvoiceRecord.number == number)
            )
        return bool(count)

    async def delete(self, invoice_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(InvoiceItemRecord).where(InvoiceItemRecord.invoice_id == invoice_id)
                    )
                    result = await session.execute(
                        delete(InvoiceRecord).where(InvoiceRecord.id == invoice_id)
                    )
        except SQLAlchemyError as exc:
            logger.error(f"Failed to delete invoice {invoice_id}: {exc}")
            raise

        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Invoice deleted: {invoice_id}")
        return deleted
