"""
Services package - Use-case orchestration over the invoice domain.
"""

from .invoicing import InvoiceService

__all__ = ["InvoiceService"]
