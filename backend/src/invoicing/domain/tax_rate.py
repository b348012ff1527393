"""Tax rate value object."""

from dataclasses import dataclass
from decimal import Decimal

from .enums import TaxClassification
from .errors import InvalidValueError, RequiredFieldError
from .money import round_to_cents, to_decimal

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class TaxRate:
    """
    A percentage in [0, 100] together with the kind of tax it represents.

    The rate is stored as a percentage (10 means 10%), not as a fraction.
    """
    rate: Decimal
    classification: TaxClassification

    def __post_init__(self) -> None:
        """Validate the rate range and coerce the classification."""
        rate = to_decimal(self.rate, "rate")
        if not 0 <= rate <= HUNDRED:
            raise InvalidValueError("rate", f"Tax rate must be between 0 and 100, got: {self.rate}")
        object.__setattr__(self, "rate", rate)
        object.__setattr__(self, "classification", _coerce_classification(self.classification))

    @classmethod
    def no_tax(cls) -> "TaxRate":
        return cls(Decimal(0), TaxClassification.NO_TAX)

    def calculate_tax(self, base_amount: Decimal | int | str) -> Decimal:
        """Tax owed on a base amount, rounded half-up to cents."""
        base = to_decimal(base_amount, "amount")
        return round_to_cents(base * self.rate / HUNDRED)

    def get_decimal_rate(self) -> Decimal:
        """The rate as a fraction, e.g. 0.1 for 10%."""
        return self.rate / HUNDRED

    def is_zero(self) -> bool:
        return self.rate == 0

    def equals(self, other: "TaxRate") -> bool:
        return self.rate == other.rate and self.classification == other.classification

    def is_greater_than(self, other: "TaxRate") -> bool:
        return self.rate > other.rate

    def is_less_than(self, other: "TaxRate") -> bool:
        return self.rate < other.rate

    def to_display_string(self) -> str:
        if self.is_zero():
            return "No Tax (0%)"
        return f"{self.classification.display_name} ({self.rate:.2f}%)"

    def __str__(self) -> str:
        return self.to_display_string()


def _coerce_classification(value: TaxClassification | str | None) -> TaxClassification:
    if isinstance(value, TaxClassification):
        return value
    if value is None or not str(value).strip():
        raise RequiredFieldError("classification")
    try:
        return TaxClassification[str(value).strip()]
    except KeyError:
        raise InvalidValueError("classification", value) from None
