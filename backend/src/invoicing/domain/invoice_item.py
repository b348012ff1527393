"""
Invoice line item.

Design Decisions:
- Frozen dataclass; update_* methods go through dataclasses.replace so
  the new item keeps the id and is validated again on construction
- Line amounts are always derived from quantity, unit price and tax rate
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from uuid import uuid4

from .errors import InvalidValueError, RequiredFieldError
from .money import Money, to_decimal
from .tax_rate import TaxRate


def _new_item_id() -> str:
    return f"item-{uuid4().hex[:12]}"


@dataclass(frozen=True)
class InvoiceItem:
    """One billable line: quantity x unit price, plus tax."""
    description: str
    quantity: Decimal
    unit_price: Money
    tax_rate: TaxRate = field(default_factory=TaxRate.no_tax)
    id: str = field(default_factory=_new_item_id)

    def __post_init__(self) -> None:
        """Validate description, quantity and unit price."""
        if self.description is None or not str(self.description).strip():
            raise RequiredFieldError("description")
        object.__setattr__(self, "description", str(self.description).strip())

        quantity = to_decimal(self.quantity, "quantity")
        if quantity <= 0:
            raise InvalidValueError("quantity", self.quantity)
        object.__setattr__(self, "quantity", quantity)

        if self.unit_price is None:
            raise RequiredFieldError("unitPrice")
        if not isinstance(self.unit_price, Money) or not self.unit_price.is_positive():
            raise InvalidValueError("unitPrice", "Unit price must be positive")

        if self.tax_rate is None:
            object.__setattr__(self, "tax_rate", TaxRate.no_tax())

        if not self.id:
            object.__setattr__(self, "id", _new_item_id())

    @property
    def currency(self) -> str:
        return self.unit_price.currency

    def calculate_subtotal(self) -> Money:
        return self.unit_price.multiply(self.quantity)

    def calculate_tax_amount(self) -> Money:
        subtotal = self.calculate_subtotal()
        return Money(self.tax_rate.calculate_tax(subtotal.amount), subtotal.currency)

    def calculate_total(self) -> Money:
        return self.calculate_subtotal().add(self.calculate_tax_amount())

    def update_description(self, description: str) -> "InvoiceItem":
        return replace(self, description=description)

    def update_quantity(self, quantity: Decimal | int | str) -> "InvoiceItem":
        return replace(self, quantity=quantity)

    def update_unit_price(self, unit_price: Money) -> "InvoiceItem":
        return replace(self, unit_price=unit_price)

    def update_tax_rate(self, tax_rate: TaxRate) -> "InvoiceItem":
        return replace(self, tax_rate=tax_rate)
