"""
Persistence contract for invoice aggregates.

Implementations live in invoicing.infrastructure.repository. Every
implementation must rebuild an aggregate losslessly: identity, status,
timestamps, paid amount, void reason and the ordered items, so totals
recomputed after a reload match those computed before saving.

Optimistic concurrency:
    Each aggregate carries a `version`. save() writes only if the stored
    version still equals the aggregate's version, then increments both.
    A stale aggregate raises ConcurrencyConflictError and nothing is
    written.

Invoice numbers are unique across stored invoices; saving a second
invoice with a taken number raises DuplicateInvoiceNumberError.
"""

from abc import ABC, abstractmethod
from datetime import date

from .enums import InvoiceStatus
from .errors import BusinessRuleViolation
from .invoice import InvoiceAggregate


class ConcurrencyConflictError(RuntimeError):
    """The stored invoice changed since this copy was loaded."""

    def __init__(self, invoice_id: str, expected_version: int, actual_version: int | None) -> None:
        self.invoice_id = invoice_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Invoice {invoice_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class DuplicateInvoiceNumberError(BusinessRuleViolation):
    """Another stored invoice already uses this number."""

    def __init__(self, number: str) -> None:
        self.number = number
        super().__init__(f"Invoice with number {number} already exists", field="number")


class InvoiceNotFoundError(LookupError):
    """No invoice matches the given id or number."""


class InvoiceRepository(ABC):
    """Abstract interface for invoice storage backends."""

    @abstractmethod
    async def save(self, invoice: InvoiceAggregate) -> None:
        """Insert or update an invoice, bumping its version."""
        pass

    @abstractmethod
    async def find_by_id(self, invoice_id: str) -> InvoiceAggregate | None:
        pass

    @abstractmethod
    async def find_by_number(self, number: str) -> InvoiceAggregate | None:
        pass

    @abstractmethod
    async def find_by_client_id(self, client_id: str) -> list[InvoiceAggregate]:
        pass

    @abstractmethod
    async def find_by_status(self, status: InvoiceStatus) -> list[InvoiceAggregate]:
        pass

    @abstractmethod
    async def find_overdue(self, today: date | None = None) -> list[InvoiceAggregate]:
        """Sent or partially paid invoices whose due date is before today."""
        pass

    @abstractmethod
    async def find_drafts_by_user(self, user_id: str) -> list[InvoiceAggregate]:
        pass

    @abstractmethod
    async def exists_by_number(self, number: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, invoice_id: str) -> bool:
        """Delete an invoice. Returns True if it existed."""
        pass
