"""
Money value object.

Design Decisions:
- Decimal for all amounts, never float, so totals add up to the cent
- Frozen dataclass: every operation returns a new instance
- Amounts carry at most 2 fractional digits; results of arithmetic are
  rounded half-up back to cents
- Currencies are restricted to a fixed allow-list and never converted;
  mixing currencies in arithmetic or comparison is a business rule error
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import BusinessRuleViolation, InvalidValueError, RequiredFieldError

CENT = Decimal("0.01")

SUPPORTED_CURRENCIES = frozenset(
    {"USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "INR"}
)

# en-US rendering of each currency's symbol
CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "CHF": "CHF ",
    "CNY": "CN¥",
    "INR": "₹",
}


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce a numeric input into a finite Decimal.

    Floats go through their shortest repr so 0.1 becomes Decimal("0.1")
    rather than its binary expansion.

    Raises:
        RequiredFieldError: value is None or a blank string
        InvalidValueError: value is not a finite number
    """
    if value is None:
        raise RequiredFieldError(field)
    if isinstance(value, bool):
        raise InvalidValueError(field, value)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        if not value.strip():
            raise RequiredFieldError(field)
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidValueError(field, value) from None
    else:
        raise InvalidValueError(field, value)

    if not result.is_finite():
        raise InvalidValueError(field, value)
    return result


def round_to_cents(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidValueError("amount", value) from None


def validate_currency(currency: str | None) -> str:
    """Return the currency code if it is in the allow-list."""
    if currency is None or not str(currency).strip():
        raise RequiredFieldError("currency")
    code = str(currency).strip()
    if code not in SUPPORTED_CURRENCIES:
        raise InvalidValueError("currency", currency)
    return code


@dataclass(frozen=True)
class Money:
    """
    An amount of a single currency.

    Example:
        >>> Money(Decimal("100"), "USD").multiply(2).to_display_string()
        '$200.00'
    """
    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        """Validate amount precision and currency."""
        amount = to_decimal(self.amount, "amount")
        if amount.normalize().as_tuple().exponent < -2:
            raise InvalidValueError("amount", f"too many decimal places: {self.amount}")
        object.__setattr__(self, "amount", round_to_cents(amount))
        object.__setattr__(self, "currency", validate_currency(self.currency))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal(0), currency)

    # -- arithmetic -------------------------------------------------------

    def _require_same_currency(self, other: "Money", operation: str) -> None:
        if self.currency != other.currency:
            raise BusinessRuleViolation(
                f"Cannot {operation} different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def add(self, other: "Money") -> "Money":
        self._require_same_currency(other, "add")
        return Money(round_to_cents(self.amount + other.amount), self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._require_same_currency(other, "subtract")
        return Money(round_to_cents(self.amount - other.amount), self.currency)

    def multiply(self, factor: Decimal | int | float | str) -> "Money":
        """Scale by a scalar factor, rounding the result to cents."""
        value = to_decimal(factor, "factor")
        return Money(round_to_cents(self.amount * value), self.currency)

    def divide(self, divisor: Decimal | int | float | str) -> "Money":
        """Divide by a non-zero scalar, rounding the result to cents."""
        value = to_decimal(divisor, "divisor")
        if value == 0:
            raise InvalidValueError("divisor", divisor)
        return Money(round_to_cents(self.amount / value), self.currency)

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __mul__(self, factor: Decimal | int) -> "Money":
        return self.multiply(factor)

    def __truediv__(self, divisor: Decimal | int) -> "Money":
        return self.divide(divisor)

    # -- comparison -------------------------------------------------------

    def equals(self, other: "Money") -> bool:
        self._require_same_currency(other, "compare")
        return self.amount == other.amount

    def is_greater_than(self, other: "Money") -> bool:
        self._require_same_currency(other, "compare")
        return self.amount > other.amount

    def is_less_than(self, other: "Money") -> bool:
        self._require_same_currency(other, "compare")
        return self.amount < other.amount

    def __gt__(self, other: "Money") -> bool:
        return self.is_greater_than(other)

    def __lt__(self, other: "Money") -> bool:
        return self.is_less_than(other)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    # -- formatting -------------------------------------------------------

    def to_display_string(self) -> str:
        """
        Format for display the way en-US locale renders currency.

        Symbol first, thousands separators, exactly two decimals and a
        leading minus for negative amounts: "-$1,234.50", "CHF 10.00".
        """
        sign = "-" if self.is_negative() else ""
        return f"{sign}{CURRENCY_SYMBOLS[self.currency]}{abs(self.amount):,.2f}"

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"
