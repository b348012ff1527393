"""Enumerations shared across the invoicing domain."""

from enum import Enum


class InvoiceStatus(Enum):
    """Lifecycle state of an invoice."""
    DRAFT = "DRAFT"
    FINALIZED = "FINALIZED"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERPAID = "OVERPAID"
    VOID = "VOID"


class InvoiceType(Enum):
    """One-off or repeating invoice."""
    STANDARD = "STANDARD"
    RECURRING = "RECURRING"


class InvoiceFrequency(Enum):
    """Billing period for recurring invoices."""
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class TaxClassification(Enum):
    """Kind of tax a rate represents."""
    SALES_TAX = "SALES_TAX"
    VAT = "VAT"
    GST = "GST"
    STATE_TAX = "STATE_TAX"
    CITY_TAX = "CITY_TAX"
    NO_TAX = "NO_TAX"
    COMBINED_TAX = "COMBINED_TAX"

    @property
    def display_name(self) -> str:
        """Human readable label, keeping acronyms upper-case."""
        if self in (TaxClassification.VAT, TaxClassification.GST):
            return self.value
        return self.value.replace("_", " ").title()
