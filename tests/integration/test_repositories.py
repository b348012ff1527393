"""Contract tests run against every InvoiceRepository backend."""

from datetime import timedelta
from decimal import Decimal

import pytest

from invoicing.domain import (
    BusinessRuleViolation,
    InvoiceAggregate,
    InvoiceItem,
    InvoiceStatus,
    TaxClassification,
    TaxRate,
)
from invoicing.domain.repository import ConcurrencyConflictError, DuplicateInvoiceNumberError


@pytest.mark.asyncio
async def test_save_and_reload_preserves_totals(repository, scenario_invoice, usd):
    await repository.save(scenario_invoice)

    loaded = await repository.find_by_id(scenario_invoice.id)

    assert loaded is not None
    assert loaded is not scenario_invoice
    assert loaded.number == scenario_invoice.number
    assert [item.id for item in loaded.items] == [item.id for item in scenario_invoice.items]
    assert [item.description for item in loaded.items] == ["Consulting hours", "Setup fee"]
    assert loaded.calculate_subtotal() == usd("250")
    assert loaded.calculate_total_tax() == usd("25")
    assert loaded.calculate_total() == usd("275")
    assert loaded.status is InvoiceStatus.DRAFT


@pytest.mark.asyncio
async def test_save_increments_version(repository, scenario_invoice):
    assert scenario_invoice.version == 0
    await repository.save(scenario_invoice)
    assert scenario_invoice.version == 1
    await repository.save(scenario_invoice)
    assert scenario_invoice.version == 2
    assert (await repository.find_by_id(scenario_invoice.id)).version == 2


@pytest.mark.asyncio
async def test_lifecycle_state_survives_reload(repository, scenario_invoice, usd, now):
    await repository.save(scenario_invoice)

    invoice = await repository.find_by_id(scenario_invoice.id)
    invoice.finalize(now)
    invoice.send(now)
    invoice.record_payment(usd("100"), now)
    await repository.save(invoice)

    reloaded = await repository.find_by_id(invoice.id)
    assert reloaded.status is InvoiceStatus.PARTIALLY_PAID
    assert reloaded.paid_amount == usd("100")
    assert reloaded.finalized_at == now
    assert reloaded.sent_at == now
    assert reloaded.balance_due() == usd("175")

    reloaded.record_payment(usd("175"), now)
    await repository.save(reloaded)

    settled = await repository.find_by_id(invoice.id)
    assert settled.status is InvoiceStatus.PAID
    assert settled.paid_at == now


@pytest.mark.asyncio
async def test_void_state_survives_reload(repository, scenario_invoice, now):
    scenario_invoice.void("Client cancelled", now)
    await repository.save(scenario_invoice)

    loaded = await repository.find_by_id(scenario_invoice.id)
    assert loaded.status is InvoiceStatus.VOID
    assert loaded.void_reason == "Client cancelled"
    assert loaded.voided_at == now


@pytest.mark.asyncio
async def test_item_changes_replace_stored_items(repository, scenario_invoice, usd):
    await repository.save(scenario_invoice)
    first, second = scenario_invoice.items

    scenario_invoice.remove_item(first.id)
    scenario_invoice.update_item(second.id, quantity=2)
    scenario_invoice.add_item(InvoiceItem("Training", 1, usd("40")))
    await repository.save(scenario_invoice)

    loaded = await repository.find_by_id(scenario_invoice.id)
    assert [item.description for item in loaded.items] == ["Setup fee", "Training"]
    assert loaded.calculate_total() == usd("150")


@pytest.mark.asyncio
async def test_stale_save_is_rejected(repository, scenario_invoice, usd):
    await repository.save(scenario_invoice)
    first = await repository.find_by_id(scenario_invoice.id)
    second = await repository.find_by_id(scenario_invoice.id)

    first.add_item(InvoiceItem("Extra", 1, usd("10")))
    await repository.save(first)

    second.void("Cancelled")
    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await repository.save(second)

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert second.version == 1
    stored = await repository.find_by_id(scenario_invoice.id)
    assert stored.status is InvoiceStatus.DRAFT
    assert len(stored.items) == 3


@pytest.mark.asyncio
async def test_new_copy_of_stored_invoice_is_rejected(repository, scenario_invoice):
    await repository.save(scenario_invoice)
    copy = InvoiceAggregate(
        id=scenario_invoice.id,
        number=scenario_invoice.number,
        client_id="client-1",
        issued_by="user-1",
        currency="USD",
        due_date=scenario_invoice.due_date,
    )
    with pytest.raises(ConcurrencyConflictError):
        await repository.save(copy)


@pytest.mark.asyncio
async def test_unsaved_invoice_with_version_is_rejected(repository, scenario_invoice):
    scenario_invoice.version = 4
    with pytest.raises(ConcurrencyConflictError):
        await repository.save(scenario_invoice)
    assert await repository.find_by_id(scenario_invoice.id) is None


@pytest.mark.asyncio
async def test_invoice_numbers_are_unique(repository, scenario_invoice):
    await repository.save(scenario_invoice)
    duplicate = InvoiceAggregate(
        number=scenario_invoice.number,
        client_id="client-2",
        issued_by="user-1",
        currency="USD",
        due_date=scenario_invoice.due_date,
    )

    with pytest.raises(DuplicateInvoiceNumberError, match="already exists") as exc_info:
        await repository.save(duplicate)

    assert isinstance(exc_info.value, BusinessRuleViolation)
    assert exc_info.value.number == "INV-001000"
    assert duplicate.version == 0
    assert await repository.find_by_id(duplicate.id) is None


@pytest.mark.asyncio
async def test_fractional_quantities_and_rates_reload_exactly(repository, make_invoice, usd):
    item = InvoiceItem(
        "Hours",
        Decimal("0.33333"),
        usd("999.99"),
        TaxRate(Decimal("8.87512"), TaxClassification.SALES_TAX),
    )
    invoice = make_invoice(items=[item])
    await repository.save(invoice)

    loaded = await repository.find_by_id(invoice.id)

    [reloaded] = loaded.items
    assert reloaded.quantity == Decimal("0.33333")
    assert reloaded.unit_price == usd("999.99")
    assert reloaded.tax_rate.rate == Decimal("8.87512")
    assert loaded.calculate_subtotal() == invoice.calculate_subtotal()
    assert loaded.calculate_total_tax() == invoice.calculate_total_tax()
    assert loaded.calculate_total() == invoice.calculate_total()


@pytest.mark.asyncio
async def test_find_by_number_and_exists(repository, scenario_invoice):
    await repository.save(scenario_invoice)

    found = await repository.find_by_number("INV-001000")

    assert found.id == scenario_invoice.id
    assert await repository.find_by_number("INV-999999") is None
    assert await repository.exists_by_number("INV-001000")
    assert not await repository.exists_by_number("INV-999999")


@pytest.mark.asyncio
async def test_find_by_client_status_and_drafts(repository, make_invoice, scenario_items, now):
    draft = make_invoice(items=scenario_items, client_id="acme", issued_by="alice")
    sent = make_invoice(items=scenario_items[:1], client_id="acme", issued_by="alice")
    sent.finalize(now)
    sent.send(now)
    other = make_invoice(items=scenario_items[1:], client_id="globex", issued_by="bob")
    for invoice in (draft, sent, other):
        await repository.save(invoice)

    by_client = await repository.find_by_client_id("acme")
    assert {invoice.id for invoice in by_client} == {draft.id, sent.id}

    by_status = await repository.find_by_status(InvoiceStatus.SENT)
    assert [invoice.id for invoice in by_status] == [sent.id]

    drafts = await repository.find_drafts_by_user("alice")
    assert [invoice.id for invoice in drafts] == [draft.id]
    assert await repository.find_drafts_by_user("nobody") == []


@pytest.mark.asyncio
async def test_find_overdue(repository, make_invoice, scenario_items, due_date, usd, now):
    late = make_invoice(items=scenario_items, due=due_date)
    later = make_invoice(items=scenario_items, due=due_date + timedelta(days=10))
    draft = make_invoice(items=scenario_items, due=due_date)
    paid = make_invoice(items=scenario_items, due=due_date)
    for invoice in (later, late, paid):
        invoice.finalize(now)
        invoice.send(now)
    later.record_payment(usd("1"), now)
    paid.record_payment(usd("275"), now)
    for invoice in (later, late, draft, paid):
        await repository.save(invoice)

    overdue = await repository.find_overdue(due_date + timedelta(days=30))

    assert [invoice.id for invoice in overdue] == [late.id, later.id]
    assert await repository.find_overdue(due_date) == []


@pytest.mark.asyncio
async def test_delete(repository, scenario_invoice):
    await repository.save(scenario_invoice)

    assert await repository.delete(scenario_invoice.id) is True
    assert await repository.find_by_id(scenario_invoice.id) is None
    assert not await repository.exists_by_number(scenario_invoice.number.value)
    assert await repository.delete(scenario_invoice.id) is False
