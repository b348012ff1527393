"""
Invoice aggregate - the owner of line items and the lifecycle state machine.

Lifecycle:
    DRAFT -> FINALIZED -> SENT -> PARTIALLY_PAID -> PAID | OVERPAID
    any state except PAID and VOID -> VOID

Design Decisions:
- Status transitions are checked against an explicit table, so an
  unlisted transition can never be applied by accident
- Every guard runs before the first assignment; a raised DomainError
  leaves the aggregate exactly as it was
- Totals are derived from the items on every call and never cached
- The constructor accepts full persisted state for rehydration;
  creation-time rules (future due date, recurring frequency) live in
  create() so invoices whose due date has passed can still be loaded
- Timestamps default to the current UTC time but every transition
  accepts an explicit `now` so callers and tests control the clock
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, TypeVar
from uuid import uuid4

from .enums import InvoiceFrequency, InvoiceStatus, InvoiceType
from .errors import BusinessRuleViolation, InvalidValueError, RequiredFieldError
from .invoice_item import InvoiceItem
from .invoice_number import InvoiceNumber, InvoiceNumberSequence
from .money import Money, validate_currency
from .tax_rate import TaxRate

# Proration assumes every month has this many days
PRORATION_REFERENCE_DAYS = 30
PRORATION_PREFIX = "PRO"

_VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.FINALIZED, InvoiceStatus.VOID}),
    InvoiceStatus.FINALIZED: frozenset({InvoiceStatus.SENT, InvoiceStatus.VOID}),
    InvoiceStatus.SENT: frozenset(
        {
            InvoiceStatus.PARTIALLY_PAID,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERPAID,
            InvoiceStatus.VOID,
        }
    ),
    InvoiceStatus.PARTIALLY_PAID: frozenset(
        {
            InvoiceStatus.PARTIALLY_PAID,  # further partial payments
            InvoiceStatus.PAID,
            InvoiceStatus.OVERPAID,
            InvoiceStatus.VOID,
        }
    ),
    # Overpayment has no refund path in this model; voiding is the only exit.
    InvoiceStatus.OVERPAID: frozenset({InvoiceStatus.VOID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}

PAYABLE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise RequiredFieldError(field)
    return str(value).strip()


E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_type: type[E], value: E | str | None, field: str) -> E | None:
    if value is None or isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidValueError(field, value) from None


def _as_date(value: date | datetime | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def _whole_days(delta: timedelta) -> int:
    """Days in a span, counting any started day as a full one."""
    if delta.seconds or delta.microseconds:
        return delta.days + 1
    return delta.days


def _proration_span(start: date | datetime | None, end: date | datetime | None) -> timedelta:
    """
    end - start for any mix of dates and datetimes.

    A plain date counts from midnight, in the timezone of the other
    argument when that one is a datetime.
    """
    for value, field in ((start, "startDate"), (end, "endDate")):
        if value is None:
            raise RequiredFieldError(field)
        if not isinstance(value, date):
            raise InvalidValueError(field, value)

    if not isinstance(start, datetime) and not isinstance(end, datetime):
        return end - start

    tz = start.tzinfo if isinstance(start, datetime) else end.tzinfo
    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min, tzinfo=tz)
    if not isinstance(end, datetime):
        end = datetime.combine(end, time.min, tzinfo=tz)
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise InvalidValueError("endDate", f"{end.isoformat()} mixes naive and aware times")
    return end - start


def _require_future_due_date(due: date, today: date) -> None:
    if due <= today:
        raise BusinessRuleViolation("Due date must be in the future")


@dataclass(frozen=True)
class TaxLine:
    """Total tax collected under one tax rate."""
    tax_rate: TaxRate
    amount: Money


class InvoiceAggregate:
    """
    An invoice with its items, enforcing invoice-wide invariants.

    Not safe for concurrent mutation: callers must hold exclusive access
    to an instance between loading and saving it (InvoiceService does this
    with a per-invoice lock plus the repository version check).

    Example:
        invoice = InvoiceAggregate.create(
            number=InvoiceNumber.generate("INV"),
            client_id="client-1",
            issued_by="user-1",
            currency="USD",
            due_date=date(2030, 1, 31),
        )
        invoice.add_item(InvoiceItem("Consulting", 2, Money(Decimal("100"), "USD")))
        invoice.finalize()
        invoice.send()
        invoice.record_payment(invoice.calculate_total())
    """

    def __init__(
        self,
        number: InvoiceNumber | str,
        client_id: str,
        issued_by: str,
        currency: str,
        due_date: date,
        invoice_type: InvoiceType | str = InvoiceType.STANDARD,
        *,
        project_id: str | None = None,
        frequency: InvoiceFrequency | str | None = None,
        notes: str | None = None,
        id: str | None = None,
        items: Iterable[InvoiceItem] = (),
        status: InvoiceStatus | str = InvoiceStatus.DRAFT,
        finalized_at: datetime | None = None,
        sent_at: datetime | None = None,
        paid_at: datetime | None = None,
        voided_at: datetime | None = None,
        paid_amount: Money | None = None,
        void_reason: str | None = None,
        version: int = 0,
    ) -> None:
        """
        Build an aggregate from already-known state.

        New invoices should go through create(); repositories call the
        constructor directly to restore persisted invoices.
        """
        if number is None:
            raise RequiredFieldError("number")
        self.number = number if isinstance(number, InvoiceNumber) else InvoiceNumber.parse(number)
        self.client_id = _require_text(client_id, "clientId")
        self.issued_by = _require_text(issued_by, "issuedBy")
        self.currency = validate_currency(currency)
        self.due_date = _as_date(due_date)
        if self.due_date is None:
            raise RequiredFieldError("dueDate")
        self.invoice_type = _coerce_enum(InvoiceType, invoice_type, "type")
        if self.invoice_type is None:
            raise RequiredFieldError("type")
        self.project_id = project_id
        self.frequency = _coerce_enum(InvoiceFrequency, frequency, "frequency")
        self.notes = notes.strip() if notes else None
        self.id = id or str(uuid4())
        self.version = version

        items = list(items)
        for item in items:
            self._require_item_currency(item)
        if paid_amount is not None and paid_amount.currency != self.currency:
            raise BusinessRuleViolation(
                f"Paid amount currency {paid_amount.currency} does not match "
                f"invoice currency {self.currency}"
            )

        self._items: list[InvoiceItem] = items
        self._status = _coerce_enum(InvoiceStatus, status, "status") or InvoiceStatus.DRAFT
        self._finalized_at = finalized_at
        self._sent_at = sent_at
        self._paid_at = paid_at
        self._voided_at = voided_at
        self._paid_amount = paid_amount
        self._void_reason = void_reason

    @classmethod
    def create(
        cls,
        number: InvoiceNumber,
        client_id: str,
        issued_by: str,
        currency: str,
        due_date: date,
        invoice_type: InvoiceType | str = InvoiceType.STANDARD,
        *,
        project_id: str | None = None,
        frequency: InvoiceFrequency | str | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> "InvoiceAggregate":
        """
        Start a new draft invoice.

        Args:
            today: Reference date for the due date check (UTC today if None)

        Raises:
            BusinessRuleViolation: due date not in the future, or a
                recurring invoice without a frequency
        """
        today = today or _utcnow().date()
        due = _as_date(due_date)
        if due is None:
            raise RequiredFieldError("dueDate")
        _require_future_due_date(due, today)

        invoice_type = _coerce_enum(InvoiceType, invoice_type, "type")
        if invoice_type is InvoiceType.RECURRING and frequency is None:
            raise BusinessRuleViolation("Recurring invoices must have a frequency")

        return cls(
            number=number,
            client_id=client_id,
            issued_by=issued_by,
            currency=currency,
            due_date=due,
            invoice_type=invoice_type,
            project_id=project_id,
            frequency=frequency,
            notes=notes,
        )

    # -- state accessors --------------------------------------------------

    @property
    def items(self) -> tuple[InvoiceItem, ...]:
        return tuple(self._items)

    @property
    def status(self) -> InvoiceStatus:
        return self._status

    @property
    def finalized_at(self) -> datetime | None:
        return self._finalized_at

    @property
    def sent_at(self) -> datetime | None:
        return self._sent_at

    @property
    def paid_at(self) -> datetime | None:
        return self._paid_at

    @property
    def voided_at(self) -> datetime | None:
        return self._voided_at

    @property
    def paid_amount(self) -> Money | None:
        return self._paid_amount

    @property
    def void_reason(self) -> str | None:
        return self._void_reason

    def allowed_transitions(self) -> frozenset[InvoiceStatus]:
        """Statuses reachable from the current one."""
        return _VALID_TRANSITIONS[self._status]

    # -- guards -----------------------------------------------------------

    def _require_transition(self, target: InvoiceStatus, message: str) -> None:
        if target not in _VALID_TRANSITIONS[self._status]:
            raise BusinessRuleViolation(message)

    def _require_draft(self, action: str) -> None:
        if self._status is not InvoiceStatus.DRAFT:
            raise BusinessRuleViolation(f"Cannot {action} non-draft invoice")

    def _require_item_currency(self, item: InvoiceItem) -> None:
        if item.currency != self.currency:
            raise BusinessRuleViolation(
                f"Item currency {item.currency} does not match invoice currency {self.currency}"
            )

    def _index_of(self, item_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        raise BusinessRuleViolation(f"Item with id {item_id} not found")

    # -- items ------------------------------------------------------------

    def add_item(self, item: InvoiceItem) -> None:
        self._require_draft("add items to")
        self._require_item_currency(item)
        if any(existing.id == item.id for existing in self._items):
            raise BusinessRuleViolation(f"Item with id {item.id} already exists")
        self._items.append(item)

    def remove_item(self, item_id: str) -> None:
        self._require_draft("remove items from")
        index = self._index_of(item_id)
        del self._items[index]

    def update_item(
        self,
        item_id: str,
        *,
        description: str | None = None,
        quantity: Decimal | int | str | None = None,
        unit_price: Money | None = None,
        tax_rate: TaxRate | None = None,
    ) -> InvoiceItem:
        """
        Replace one item with an updated copy, keeping its position.

        Only the given fields change. The item is rebuilt (and so
        re-validated) before anything in the invoice is touched.

        Returns:
            The updated item
        """
        self._require_draft("update items in")
        index = self._index_of(item_id)

        updated = self._items[index]
        if description is not None:
            updated = updated.update_description(description)
        if quantity is not None:
            updated = updated.update_quantity(quantity)
        if unit_price is not None:
            updated = updated.update_unit_price(unit_price)
            self._require_item_currency(updated)
        if tax_rate is not None:
            updated = updated.update_tax_rate(tax_rate)

        self._items[index] = updated
        return updated

    # -- totals -----------------------------------------------------------

    def calculate_subtotal(self) -> Money:
        subtotal = Money.zero(self.currency)
        for item in self._items:
            subtotal = subtotal.add(item.calculate_subtotal())
        return subtotal

    def calculate_total_tax(self) -> Money:
        tax = Money.zero(self.currency)
        for item in self._items:
            tax = tax.add(item.calculate_tax_amount())
        return tax

    def calculate_total(self) -> Money:
        return self.calculate_subtotal().add(self.calculate_total_tax())

    def tax_breakdown(self) -> list[TaxLine]:
        """Tax totals per distinct rate, in the order rates first appear."""
        totals: dict[TaxRate, Money] = {}
        for item in self._items:
            if item.tax_rate.is_zero():
                continue
            current = totals.get(item.tax_rate, Money.zero(self.currency))
            totals[item.tax_rate] = current.add(item.calculate_tax_amount())
        return [TaxLine(tax_rate=rate, amount=amount) for rate, amount in totals.items()]

    def balance_due(self) -> Money:
        """Total minus payments so far; negative once overpaid."""
        paid = self._paid_amount or Money.zero(self.currency)
        return self.calculate_total().subtract(paid)

    def is_overdue(self, today: date | None = None) -> bool:
        """True for an unsettled sent invoice whose due date has passed."""
        today = today or _utcnow().date()
        return self._status in PAYABLE_STATUSES and self.due_date < today

    # -- lifecycle --------------------------------------------------------

    def finalize(self, now: datetime | None = None) -> None:
        """Lock the item list. DRAFT -> FINALIZED."""
        if self._status is not InvoiceStatus.DRAFT:
            raise BusinessRuleViolation("Only draft invoices can be finalized")
        if not self._items:
            raise BusinessRuleViolation("Cannot finalize invoice without items")
        self._require_transition(InvoiceStatus.FINALIZED, "Only draft invoices can be finalized")

        self._status = InvoiceStatus.FINALIZED
        self._finalized_at = now or _utcnow()

    def send(self, now: datetime | None = None) -> None:
        """FINALIZED -> SENT."""
        if self._status is not InvoiceStatus.FINALIZED:
            raise BusinessRuleViolation("Only finalized invoices can be sent")
        self._require_transition(InvoiceStatus.SENT, "Only finalized invoices can be sent")

        self._status = InvoiceStatus.SENT
        self._sent_at = now or _utcnow()

    def record_payment(self, amount: Money, now: datetime | None = None) -> None:
        """
        Apply a payment and move to PAID, PARTIALLY_PAID or OVERPAID.

        The cumulative paid amount is compared with the current total:
        equal settles the invoice, less leaves it partially paid, more
        marks it overpaid.

        Raises:
            BusinessRuleViolation: invoice not awaiting payment, wrong
                currency, or a non-positive amount
        """
        if self._status not in PAYABLE_STATUSES:
            raise BusinessRuleViolation(
                "Can only record payments for sent or partially paid invoices"
            )
        if not isinstance(amount, Money):
            raise InvalidValueError("amount", amount)
        if amount.currency != self.currency:
            raise BusinessRuleViolation(
                f"Payment currency {amount.currency} does not match invoice currency {self.currency}"
            )
        if not amount.is_positive():
            raise BusinessRuleViolation("Payment amount must be positive")

        paid = (self._paid_amount or Money.zero(self.currency)).add(amount)
        total = self.calculate_total()
        if paid.equals(total):
            target = InvoiceStatus.PAID
        elif paid.is_less_than(total):
            target = InvoiceStatus.PARTIALLY_PAID
        else:
            target = InvoiceStatus.OVERPAID
        self._require_transition(target, f"Cannot move from {self._status.value} to {target.value}")

        self._paid_amount = paid
        self._status = target
        if target is InvoiceStatus.PAID:
            self._paid_at = now or _utcnow()

    def mark_as_paid(self, amount: Money, now: datetime | None = None) -> None:
        """Settle the invoice with a single payment of exactly the total."""
        total = self.calculate_total()
        if not amount.equals(total):
            raise BusinessRuleViolation(
                f"Payment amount {amount.to_display_string()} does not match "
                f"total due {total.to_display_string()}"
            )
        self.record_payment(amount, now=now)

    def void(self, reason: str, now: datetime | None = None) -> None:
        """Cancel the invoice. Allowed from any state except PAID and VOID."""
        if self._status is InvoiceStatus.VOID:
            raise BusinessRuleViolation("Invoice is already voided")
        if self._status is InvoiceStatus.PAID:
            raise BusinessRuleViolation("Cannot void a paid invoice")
        self._require_transition(InvoiceStatus.VOID, f"Cannot void a {self._status.value} invoice")
        reason = _require_text(reason, "reason")

        self._status = InvoiceStatus.VOID
        self._void_reason = reason
        self._voided_at = now or _utcnow()

    def _prorated_items(
        self,
        start_date: date | datetime,
        end_date: date | datetime,
    ) -> list[InvoiceItem]:
        """Run the proration guards and build the scaled copies of the items."""
        if self.invoice_type is not InvoiceType.RECURRING:
            raise BusinessRuleViolation("Only recurring invoices can be prorated")
        span = _proration_span(start_date, end_date)
        if span <= timedelta(0):
            raise BusinessRuleViolation("Start date must be before end date")

        factor = Decimal(_whole_days(span)) / Decimal(PRORATION_REFERENCE_DAYS)
        # A unit price that rounds to 0.00 is rejected by InvoiceItem.
        return [
            InvoiceItem(
                description=f"{item.description} (Prorated)",
                quantity=item.quantity,
                unit_price=item.unit_price.multiply(factor),
                tax_rate=item.tax_rate,
            )
            for item in self._items
        ]

    def check_proration(
        self,
        start_date: date | datetime,
        end_date: date | datetime,
        today: date | None = None,
    ) -> None:
        """
        Raise the error prorate() would raise, without building an invoice.

        Lets callers validate before spending an invoice number.
        """
        self._prorated_items(start_date, end_date)
        _require_future_due_date(self.due_date, today or _utcnow().date())

    def prorate(
        self,
        start_date: date | datetime,
        end_date: date | datetime,
        *,
        number: InvoiceNumber | None = None,
        sequence: InvoiceNumberSequence | None = None,
        today: date | None = None,
    ) -> "InvoiceAggregate":
        """
        Build a standard invoice covering part of a billing period.

        Unit prices are scaled by days(end - start) / 30; quantities and
        tax rates are kept. This invoice is not modified.

        Args:
            start_date: First day of the partial period
            end_date: End of the partial period, after start_date. Dates
                and datetimes may be mixed; a date counts from midnight.
            number: Number for the new invoice; generated with the "PRO"
                prefix if None
            sequence: Counter used when generating the number
            today: Reference date for the new invoice's due date check

        Returns:
            A new DRAFT invoice of type STANDARD

        Raises:
            BusinessRuleViolation: not recurring, empty or reversed period,
                or the due date has passed
            InvalidValueError: a scaled unit price rounds to zero
        """
        prorated_items = self._prorated_items(start_date, end_date)
        today = today or _utcnow().date()
        _require_future_due_date(self.due_date, today)

        prorated = InvoiceAggregate.create(
            number=number or InvoiceNumber.generate(PRORATION_PREFIX, sequence),
            client_id=self.client_id,
            issued_by=self.issued_by,
            currency=self.currency,
            due_date=self.due_date,
            invoice_type=InvoiceType.STANDARD,
            project_id=self.project_id,
            notes=(
                f"Prorated invoice for period "
                f"{_as_date(start_date).isoformat()} to {_as_date(end_date).isoformat()}"
            ),
            today=today,
        )
        for item in prorated_items:
            prorated.add_item(item)
        return prorated

    def __repr__(self) -> str:
        return (
            f"InvoiceAggregate(id={self.id!r}, number={self.number.value!r}, "
            f"status={self._status.value}, total={self.calculate_total()})"
        )
