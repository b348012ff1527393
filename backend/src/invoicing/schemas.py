"""
Pydantic snapshot schemas for invoices.

A snapshot is a JSON-compatible image of an InvoiceAggregate. It is what
the in-memory repository stores and what the CLI prints with --json.
All monetary values and quantities are strings to avoid floating point
issues. Derived totals are included for readers but ignored on load;
they are always recomputed from the items.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from invoicing.domain import (
    InvoiceAggregate,
    InvoiceFrequency,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
    Money,
    TaxRate,
)


class MoneySchema(BaseModel):
    """Amount and currency."""
    amount: str = Field(..., description="Decimal amount with 2 places, e.g. '275.00'")
    currency: str = Field(..., description="ISO 4217 code")

    @classmethod
    def from_domain(cls, money: Money) -> "MoneySchema":
        return cls(amount=f"{money.amount:.2f}", currency=money.currency)

    def to_domain(self) -> Money:
        return Money(Decimal(self.amount), self.currency)


class TaxRateSchema(BaseModel):
    rate: str
    classification: str

    @classmethod
    def from_domain(cls, tax_rate: TaxRate) -> "TaxRateSchema":
        return cls(rate=str(tax_rate.rate), classification=tax_rate.classification.name)

    def to_domain(self) -> TaxRate:
        return TaxRate(Decimal(self.rate), self.classification)


class InvoiceItemSchema(BaseModel):
    """One line item; `total` is informational."""
    id: str
    description: str
    quantity: str
    unit_price: MoneySchema
    tax_rate: TaxRateSchema
    total: MoneySchema | None = None

    @classmethod
    def from_domain(cls, item: InvoiceItem) -> "InvoiceItemSchema":
        return cls(
            id=item.id,
            description=item.description,
            quantity=str(item.quantity),
            unit_price=MoneySchema.from_domain(item.unit_price),
            tax_rate=TaxRateSchema.from_domain(item.tax_rate),
            total=MoneySchema.from_domain(item.calculate_total()),
        )

    def to_domain(self) -> InvoiceItem:
        return InvoiceItem(
            id=self.id,
            description=self.description,
            quantity=Decimal(self.quantity),
            unit_price=self.unit_price.to_domain(),
            tax_rate=self.tax_rate.to_domain(),
        )


class TotalsSchema(BaseModel):
    subtotal: MoneySchema
    total_tax: MoneySchema
    total: MoneySchema
    balance_due: MoneySchema


class InvoiceSnapshot(BaseModel):
    """Complete persisted state of one invoice."""
    id: str
    number: str
    client_id: str
    project_id: str | None = None
    issued_by: str
    type: InvoiceType
    status: InvoiceStatus
    currency: str
    due_date: date
    frequency: InvoiceFrequency | None = None
    notes: str | None = None
    items: list[InvoiceItemSchema] = []
    totals: TotalsSchema | None = None

    finalized_at: datetime | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    voided_at: datetime | None = None
    paid_amount: MoneySchema | None = None
    void_reason: str | None = None

    version: int = 0

    @classmethod
    def from_domain(cls, invoice: InvoiceAggregate) -> "InvoiceSnapshot":
        return cls(
            id=invoice.id,
            number=invoice.number.value,
            client_id=invoice.client_id,
            project_id=invoice.project_id,
            issued_by=invoice.issued_by,
            type=invoice.invoice_type,
            status=invoice.status,
            currency=invoice.currency,
            due_date=invoice.due_date,
            frequency=invoice.frequency,
            notes=invoice.notes,
            items=[InvoiceItemSchema.from_domain(item) for item in invoice.items],
            totals=TotalsSchema(
                subtotal=MoneySchema.from_domain(invoice.calculate_subtotal()),
                total_tax=MoneySchema.from_domain(invoice.calculate_total_tax()),
                total=MoneySchema.from_domain(invoice.calculate_total()),
                balance_due=MoneySchema.from_domain(invoice.balance_due()),
            ),
            finalized_at=invoice.finalized_at,
            sent_at=invoice.sent_at,
            paid_at=invoice.paid_at,
            voided_at=invoice.voided_at,
            paid_amount=(
                MoneySchema.from_domain(invoice.paid_amount)
                if invoice.paid_amount is not None
                else None
            ),
            void_reason=invoice.void_reason,
            version=invoice.version,
        )

    def to_domain(self) -> InvoiceAggregate:
        return InvoiceAggregate(
            id=self.id,
            number=self.number,
            client_id=self.client_id,
            issued_by=self.issued_by,
            currency=self.currency,
            due_date=self.due_date,
            invoice_type=self.type,
            project_id=self.project_id,
            frequency=self.frequency,
            notes=self.notes,
            items=[item.to_domain() for item in self.items],
            status=self.status,
            finalized_at=self.finalized_at,
            sent_at=self.sent_at,
            paid_at=self.paid_at,
            voided_at=self.voided_at,
            paid_amount=self.paid_amount.to_domain() if self.paid_amount else None,
            void_reason=self.void_reason,
            version=self.version,
        )
