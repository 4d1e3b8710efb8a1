from datetime import date, timedelta
from decimal import Decimal

from conftest import actor_for, make_invoice, set_grace_period
from models import InvoiceStatus

DUE = date(2026, 10, 1)


def _sent_invoice(services, world, **overrides):
    values = {"issue_date": date(2026, 9, 20), "due_date": DUE}
    values.update(overrides)
    return make_invoice(services, world, **values)


def test_grace_period_boundary(db, services, world) -> None:
    set_grace_period(db, world.landlord, 3)
    invoice = _sent_invoice(services, world)

    on_last_grace_day = services.overdue.run(today=DUE + timedelta(days=3))
    db.refresh(invoice)
    assert on_last_grace_day.updated == 0
    assert invoice.status == InvoiceStatus.SENT

    day_after = services.overdue.run(today=DUE + timedelta(days=4))
    db.refresh(invoice)
    assert day_after.updated == 1
    assert invoice.status == InvoiceStatus.OVERDUE


def test_missing_preference_means_no_grace(db, services, world) -> None:
    invoice = _sent_invoice(services, world)

    services.overdue.run(today=DUE)
    db.refresh(invoice)
    assert invoice.status == InvoiceStatus.SENT

    services.overdue.run(today=DUE + timedelta(days=1))
    db.refresh(invoice)
    assert invoice.status == InvoiceStatus.OVERDUE


def test_sweep_is_idempotent(db, services, world) -> None:
    _sent_invoice(services, world)
    _sent_invoice(services, world)
    today = DUE + timedelta(days=10)

    first = services.overdue.run(today=today)
    second = services.overdue.run(today=today)

    assert first.examined == 2
    assert first.updated == 2
    assert second.examined == 0
    assert second.updated == 0


def test_only_sent_invoices_are_touched(db, services, world) -> None:
    landlord = actor_for(world.landlord)
    paid = _sent_invoice(services, world)
    cancelled = _sent_invoice(services, world)
    voided = _sent_invoice(services, world)
    services.lifecycle.mark_invoice_paid(paid.id, landlord)
    services.lifecycle.cancel_invoice(cancelled.id, landlord)
    services.lifecycle.void_invoice(voided.id, landlord)

    result = services.overdue.run(today=DUE + timedelta(days=30))

    assert result.examined == 0
    for invoice, expected in ((paid, InvoiceStatus.PAID), (cancelled, InvoiceStatus.CANCELLED), (voided, InvoiceStatus.VOID)):
        db.refresh(invoice)
        assert invoice.status == expected


def test_grace_is_read_per_issuer(db, services, world) -> None:
    set_grace_period(db, world.landlord, 10)
    generous = _sent_invoice(services, world)
    strict = make_invoice(
        services,
        world,
        tenant=world.tenant3,
        issuer=world.landlord2,
        rent_amount=Decimal("900"),
        issue_date=date(2026, 9, 20),
        due_date=DUE,
    )

    result = services.overdue.run(today=DUE + timedelta(days=5))

    db.refresh(generous)
    db.refresh(strict)
    assert result.updated == 1
    assert generous.status == InvoiceStatus.SENT
    assert strict.status == InvoiceStatus.OVERDUE


def test_default_today_comes_from_clock(db, services, world) -> None:
    invoice = _sent_invoice(services, world)
    services.overdue.run()
    db.refresh(invoice)
    assert invoice.status == InvoiceStatus.OVERDUE
