"""Tests for the snapshot schemas."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from invoicing.domain import InvoiceStatus, InvoiceType, Money, TaxClassification, TaxRate
from invoicing.schemas import InvoiceSnapshot, MoneySchema, TaxRateSchema


def test_money_is_serialized_as_string(usd):
    schema = MoneySchema.from_domain(usd("275"))
    assert schema.amount == "275.00"
    assert schema.currency == "USD"
    assert schema.to_domain() == usd("275")


def test_tax_rate_uses_classification_name():
    schema = TaxRateSchema.from_domain(TaxRate(Decimal("7.25"), TaxClassification.STATE_TAX))
    assert schema.model_dump() == {"rate": "7.25", "classification": "STATE_TAX"}


def test_snapshot_contains_totals(scenario_invoice):
    data = InvoiceSnapshot.from_domain(scenario_invoice).model_dump(mode="json")

    assert data["number"] == "INV-001000"
    assert data["type"] == "STANDARD"
    assert data["status"] == "DRAFT"
    assert data["due_date"] == "2030-02-01"
    assert data["totals"]["subtotal"] == {"amount": "250.00", "currency": "USD"}
    assert data["totals"]["total_tax"]["amount"] == "25.00"
    assert data["totals"]["total"]["amount"] == "275.00"
    assert data["items"][0]["total"]["amount"] == "220.00"


def test_snapshot_round_trip_preserves_state(sent_invoice, usd, now):
    sent_invoice.record_payment(usd("100"), now)

    json_text = InvoiceSnapshot.from_domain(sent_invoice).model_dump_json()
    restored = InvoiceSnapshot.model_validate_json(json_text).to_domain()

    assert restored.id == sent_invoice.id
    assert restored.number == sent_invoice.number
    assert restored.status is InvoiceStatus.PARTIALLY_PAID
    assert restored.items == sent_invoice.items
    assert restored.paid_amount == usd("100")
    assert restored.sent_at == now
    assert restored.finalized_at == now
    assert restored.calculate_total() == sent_invoice.calculate_total()
    assert restored.balance_due() == usd("175")


def test_stored_totals_are_ignored_on_load(scenario_invoice):
    data = InvoiceSnapshot.from_domain(scenario_invoice).model_dump(mode="json")
    data["totals"]["total"]["amount"] = "1.00"

    restored = InvoiceSnapshot.model_validate(data).to_domain()

    assert restored.calculate_total() == Money(Decimal("275"), "USD")


def test_unknown_status_fails_validation(scenario_invoice):
    data = InvoiceSnapshot.from_domain(scenario_invoice).model_dump(mode="json")
    data["status"] = "ARCHIVED"
    with pytest.raises(ValidationError):
        InvoiceSnapshot.model_validate(data)


def test_recurring_fields(make_invoice):
    invoice = make_invoice(invoice_type=InvoiceType.RECURRING, frequency="QUARTERLY")
    data = InvoiceSnapshot.from_domain(invoice).model_dump(mode="json")
    assert data["type"] == "RECURRING"
    assert data["frequency"] == "QUARTERLY"
