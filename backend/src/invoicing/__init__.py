"""
Invoicing core - financial domain model for business invoices.

Money and tax value objects, invoice line items, and the invoice
lifecycle state machine, plus the persistence and service layers
that load, mutate and save invoices.
"""

__version__ = "0.1.0"
