from datetime import date
from decimal import Decimal

import pytest

from conftest import SUPER_ADMIN, actor_for, add_payment, make_invoice
from errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from models import Invoice, InvoiceStatus, PaymentStatus
from services import NewPayment


def test_invoice_is_paid_on_the_link_that_crosses_the_total(db, services, world) -> None:
    invoice = make_invoice(services, world, rent_amount=Decimal("1200"))
    first = add_payment(db, world.tenant, "700", receipt_number="MM-1")
    second = add_payment(db, world.tenant, "500", receipt_number="MM-2")
    landlord = actor_for(world.landlord)

    partial = services.reconciliation.link_payment(first.id, invoice.id, landlord)
    assert partial.invoice_paid is False
    assert partial.invoice.status == InvoiceStatus.SENT

    full = services.reconciliation.link_payment(second.id, invoice.id, landlord)
    assert full.invoice_paid is True
    assert full.invoice.status == InvoiceStatus.PAID
    assert full.invoice.payment_method == "mobile_money"
    assert full.invoice.payment_reference == "MM-2"
    assert full.invoice.paid_date == second.payment_date


def test_pending_payments_do_not_count(db, services, world) -> None:
    invoice = make_invoice(services, world, rent_amount=Decimal("1200"))
    pending = add_payment(db, world.tenant, "1200", status=PaymentStatus.PENDING, receipt_number="MM-P")

    result = services.reconciliation.link_payment(pending.id, invoice.id, actor_for(world.landlord))

    assert result.invoice_paid is False
    assert result.invoice.status == InvoiceStatus.SENT
    assert result.payment.invoice_id == invoice.id


def test_approving_a_linked_payment_settles_the_invoice(db, services, world) -> None:
    invoice = make_invoice(services, world, rent_amount=Decimal("1200"))
    shadow = next(payment for payment in invoice.payments if payment.receipt_number.startswith("PENDING-"))

    services.payments.approve_payment(shadow.id, actor_for(world.landlord))

    db.refresh(invoice)
    assert shadow.status == PaymentStatus.APPROVED
    assert invoice.status == InvoiceStatus.PAID


def test_payment_linked_elsewhere_is_rejected(db, services, world) -> None:
    first = make_invoice(services, world, rent_amount=Decimal("1200"))
    second = make_invoice(services, world, rent_amount=Decimal("1200"))
    payment = add_payment(db, world.tenant, "300", receipt_number="MM-3")
    landlord = actor_for(world.landlord)
    services.reconciliation.link_payment(payment.id, first.id, landlord)

    with pytest.raises(StateConflictError):
        services.reconciliation.link_payment(payment.id, second.id, landlord)

    db.refresh(payment)
    db.refresh(second)
    assert payment.invoice_id == first.id
    assert second.status == InvoiceStatus.SENT


def test_cross_tenant_link_is_rejected(db, services, world) -> None:
    invoice = make_invoice(services, world)
    payment = add_payment(db, world.other_tenant, "1200", receipt_number="MM-4")

    with pytest.raises(ValidationError):
        services.reconciliation.link_payment(payment.id, invoice.id, actor_for(world.landlord))
    db.refresh(payment)
    assert payment.invoice_id is None


def test_link_into_paid_invoice_is_rejected(db, services, world) -> None:
    invoice = make_invoice(services, world)
    landlord = actor_for(world.landlord)
    services.lifecycle.mark_invoice_paid(invoice.id, landlord)
    payment = add_payment(db, world.tenant, "1200", receipt_number="MM-5")

    with pytest.raises(StateConflictError):
        services.reconciliation.link_payment(payment.id, invoice.id, landlord)


def test_link_missing_records(db, services, world) -> None:
    invoice = make_invoice(services, world)
    payment = add_payment(db, world.tenant, "1200", receipt_number="MM-6")
    landlord = actor_for(world.landlord)

    with pytest.raises(NotFoundError):
        services.reconciliation.link_payment(987654, invoice.id, landlord)
    with pytest.raises(NotFoundError):
        services.reconciliation.link_payment(payment.id, 987654, landlord)
    with pytest.raises(NotFoundError):
        services.reconciliation.link_payment(payment.id, invoice.id, actor_for(world.landlord2))


def test_auto_reconcile_links_and_pays_then_is_a_no_op(db, services, world) -> None:
    invoice = make_invoice(services, world, rent_amount=Decimal("1200"))
    payment = add_payment(db, world.tenant, "1200", receipt_number="MM-7")

    first_run = services.reconciliation.auto_reconcile_payments(actor_for(world.admin))

    db.refresh(payment)
    db.refresh(invoice)
    assert first_run.reconciled == 1
    assert first_run.invoices_paid == 1
    assert payment.invoice_id == invoice.id
    assert invoice.status == InvoiceStatus.PAID

    second_run = services.reconciliation.auto_reconcile_payments(actor_for(world.admin))
    assert second_run.examined == 0
    assert second_run.reconciled == 0
    assert second_run.invoices_paid == 0
    db.refresh(payment)
    assert payment.invoice_id == invoice.id


def test_auto_reconcile_prefers_oldest_due_exact_match(db, services, world) -> None:
    later = make_invoice(services, world, rent_amount=Decimal("1200"), due_date=date(2026, 12, 5))
    earlier = make_invoice(services, world, rent_amount=Decimal("1200"), due_date=date(2026, 11, 5))
    other_amount = make_invoice(services, world, rent_amount=Decimal("900"), due_date=date(2026, 10, 25))
    payment = add_payment(db, world.tenant, "1200", receipt_number="MM-8")
    unmatched = add_payment(db, world.tenant, "1234", receipt_number="MM-9")

    result = services.reconciliation.auto_reconcile_payments(SUPER_ADMIN)

    db.refresh(payment)
    db.refresh(unmatched)
    assert result.examined == 2
    assert result.reconciled == 1
    assert payment.invoice_id == earlier.id
    assert unmatched.invoice_id is None
    db.refresh(later)
    db.refresh(other_amount)
    assert later.status == InvoiceStatus.SENT
    assert other_amount.status == InvoiceStatus.SENT


def test_auto_reconcile_pays_one_invoice_per_payment(db, services, world) -> None:
    first = make_invoice(services, world, rent_amount=Decimal("1200"), due_date=date(2026, 11, 5))
    second = make_invoice(services, world, rent_amount=Decimal("1200"), due_date=date(2026, 12, 5))
    add_payment(db, world.tenant, "1200", receipt_number="MM-10", payment_date=date(2026, 10, 1))
    add_payment(db, world.tenant, "1200", receipt_number="MM-11", payment_date=date(2026, 10, 2))

    result = services.reconciliation.auto_reconcile_payments(SUPER_ADMIN)

    db.refresh(first)
    db.refresh(second)
    assert result.invoices_paid == 2
    assert first.status == InvoiceStatus.PAID
    assert second.status == InvoiceStatus.PAID


def test_auto_reconcile_stays_inside_the_company(db, services, world) -> None:
    foreign = make_invoice(services, world, tenant=world.tenant3, issuer=world.landlord2, rent_amount=Decimal("900"))
    payment = add_payment(db, world.tenant3, "900", receipt_number="MM-12")

    result = services.reconciliation.auto_reconcile_payments(actor_for(world.admin))

    db.refresh(payment)
    assert result.examined == 0
    assert payment.invoice_id is None
    db.refresh(foreign)
    assert foreign.status == InvoiceStatus.SENT


def test_auto_reconcile_roles(services, world) -> None:
    with pytest.raises(PermissionDeniedError):
        services.reconciliation.auto_reconcile_payments(actor_for(world.tenant))
    with pytest.raises(PermissionDeniedError):
        services.reconciliation.auto_reconcile_payments(actor_for(world.caretaker))


def test_invoice_moved_by_another_writer_keeps_the_link_and_reports_unpaid(db, services, world, monkeypatch) -> None:
    invoice = make_invoice(services, world, rent_amount=Decimal("1200"))
    payment = add_payment(db, world.tenant, "1200", receipt_number="MM-13")
    store = services.lifecycle.payments
    settled_total = store.settled_total

    def voided_after_reading(invoice_id):
        total = settled_total(invoice_id)
        db.query(Invoice).filter(Invoice.id == invoice_id).update(
            {"status": InvoiceStatus.VOID}, synchronize_session=False
        )
        db.commit()
        return total

    monkeypatch.setattr(store, "settled_total", voided_after_reading)

    result = services.reconciliation.link_payment(payment.id, invoice.id, actor_for(world.landlord))

    assert result.invoice_paid is False
    assert result.invoice.status == InvoiceStatus.VOID
    db.refresh(payment)
    assert payment.invoice_id == invoice.id


def test_receipt_numbers_continue_after_the_highest_issued(db, services, world) -> None:
    # a receipt carried over from an earlier system, ahead of the count
    add_payment(db, world.tenant, "50", receipt_number="RCT-2026-00007")
    landlord = actor_for(world.landlord)

    first = services.payments.record_payment(NewPayment(tenant_id=world.tenant.id, amount=Decimal("100")), landlord)
    second = services.payments.record_payment(NewPayment(tenant_id=world.tenant.id, amount=Decimal("200")), landlord)

    assert first.receipt_number == "RCT-2026-00008"
    assert second.receipt_number == "RCT-2026-00009"
