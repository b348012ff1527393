"""
Infrastructure package - persistence adapters for invoice aggregates.
"""

from .repository import InMemoryInvoiceRepository, SqlAlchemyInvoiceRepository

__all__ = ["InMemoryInvoiceRepository", "SqlAlchemyInvoiceRepository"]
