"""
Domain package - Core business logic with no external dependencies.

This package contains the pure Python value objects, line items and the
invoice aggregate that encapsulate the financial rules of invoicing.
"""

from .enums import InvoiceFrequency, InvoiceStatus, InvoiceType, TaxClassification
from .errors import (
    BusinessRuleViolation,
    DomainError,
    ErrorCode,
    InvalidValueError,
    RequiredFieldError,
)
from .invoice import InvoiceAggregate, TaxLine
from .invoice_item import InvoiceItem
from .invoice_number import InvoiceNumber, InvoiceNumberSequence
from .money import Money
from .tax_rate import TaxRate

__all__ = [
    "BusinessRuleViolation",
    "DomainError",
    "ErrorCode",
    "InvalidValueError",
    "InvoiceAggregate",
    "InvoiceFrequency",
    "InvoiceItem",
    "InvoiceNumber",
    "InvoiceNumberSequence",
    "InvoiceStatus",
    "InvoiceType",
    "Money",
    "RequiredFieldError",
    "TaxClassification",
    "TaxLine",
    "TaxRate",
]
