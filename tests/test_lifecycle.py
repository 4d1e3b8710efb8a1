from datetime import date
from decimal import Decimal

import pytest

from conftest import TODAY, FakeNotifier, FakeSnapshots, actor_for, make_invoice, set_grace_period
from errors import (
    CollisionExhaustedError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from models import Invoice, InvoiceStatus, Payment, PaymentStatus
from services import ChargeItem, NewInvoice, UtilityCharge, build_services
from services.lifecycle import TRANSITIONS, can_transition, next_due_date, sources_for
from services.sequence import SequenceAllocator


def _line_total(invoice: Invoice) -> Decimal:
    return sum((item.total_price for item in invoice.line_items), Decimal("0"))


def test_rent_plus_included_utility_creates_sent_invoice_with_shadow_payment(db, services, world) -> None:
    data = NewInvoice(
        tenant_id=world.tenant.id,
        rent_amount=Decimal("1000"),
        utility_bills=[
            UtilityCharge(utility_type="water", amount=Decimal("200"), included=True),
            UtilityCharge(utility_type="electricity", amount=Decimal("350"), included=False),
        ],
    )
    result = services.lifecycle.create_invoice(data, actor_for(world.landlord))
    invoice = result.invoice

    assert invoice.total_amount == Decimal("1200")
    assert invoice.status == InvoiceStatus.SENT
    assert len(invoice.line_items) == 2
    assert _line_total(invoice) == invoice.total_amount

    payments = db.query(Payment).filter(Payment.invoice_id == invoice.id).all()
    assert len(payments) == 1
    shadow = payments[0]
    assert shadow.amount == Decimal("1200")
    assert shadow.status == PaymentStatus.PENDING
    assert shadow.receipt_number == f"PENDING-{invoice.invoice_number}"
    assert shadow.payment_type == "rent"
    assert shadow.payment_period == "November 2026"
    assert result.warnings == []


def test_creation_defaults(db, services, world) -> None:
    invoice = make_invoice(services, world)

    assert invoice.invoice_number == "INV-SAP-2026-10-0001"
    assert invoice.company_id == 1
    assert invoice.currency == "KES"
    assert invoice.issue_date == TODAY
    assert invoice.due_date == date(2026, 11, 5)
    assert invoice.title == "Invoice for Jane Wanjiru"
    assert invoice.description == "Monthly Rent and Charges"
    assert invoice.property_id == world.skyline.id
    assert invoice.unit_id == world.unit_a1.id
    assert invoice.verification_token


def test_issuer_preference_sets_currency(db, services, world) -> None:
    set_grace_period(db, world.landlord, 3, currency="usd")
    invoice = make_invoice(services, world)
    assert invoice.currency == "USD"


def test_numbers_increase_within_company_and_month(services, world) -> None:
    first = make_invoice(services, world)
    second = make_invoice(services, world)
    other_property = make_invoice(services, world, tenant=world.other_tenant)

    assert first.invoice_number == "INV-SAP-2026-10-0001"
    assert second.invoice_number == "INV-SAP-2026-10-0002"
    assert other_property.invoice_number == "INV-GVA-2026-10-0001"


def test_tax_discount_and_items_balance(services, world) -> None:
    invoice = make_invoice(
        services,
        world,
        rent_amount=Decimal("1000"),
        items=[ChargeItem(description="Parking", unit_price=Decimal("50"), quantity=Decimal("2"))],
        tax_amount=Decimal("16"),
        discount_amount=Decimal("10"),
        total_amount=Decimal("1106"),
    )

    assert invoice.subtotal == Decimal("1100")
    assert invoice.total_amount == Decimal("1106")
    assert _line_total(invoice) == invoice.total_amount
    assert [item.item_type for item in invoice.line_items] == ["rent", "item", "tax", "discount"]


def test_bare_total_becomes_single_line(services, world) -> None:
    invoice = make_invoice(services, world, rent_amount=None, total_amount=Decimal("750"), invoice_type="other")
    assert len(invoice.line_items) == 1
    assert invoice.line_items[0].total_price == Decimal("750")
    assert invoice.total_amount == Decimal("750")


def test_mismatched_total_is_rejected_without_writes(db, services, world) -> None:
    with pytest.raises(ValidationError):
        make_invoice(services, world, rent_amount=Decimal("1000"), total_amount=Decimal("999"))
    assert db.query(Invoice).count() == 0
    assert db.query(Payment).count() == 0


def test_non_positive_total_is_rejected(services, world) -> None:
    with pytest.raises(ValidationError):
        make_invoice(services, world, rent_amount=Decimal("0"))


def test_recipient_checks(services, world) -> None:
    with pytest.raises(NotFoundError):
        make_invoice(services, world, tenant_id=999999)
    with pytest.raises(ValidationError):
        make_invoice(services, world, tenant=world.agent)
    with pytest.raises(PermissionDeniedError):
        make_invoice(services, world, tenant=world.tenant3)


def test_side_effect_failures_do_not_fail_creation(db, world) -> None:
    services = build_services(
        db,
        notifier=FakeNotifier(fail=True),
        snapshots=FakeSnapshots(fail=True),
        today=lambda: TODAY,
        backoff_ms=0,
    )
    result = services.lifecycle.create_invoice(
        NewInvoice(tenant_id=world.tenant.id, rent_amount=Decimal("1200")),
        actor_for(world.landlord),
    )

    assert result.invoice.id is not None
    assert len(result.warnings) == 2
    assert db.query(Invoice).count() == 1
    assert db.query(Payment).filter(Payment.invoice_id == result.invoice.id).count() == 1


def test_snapshot_and_notification_recorded(services, fakes, world) -> None:
    invoice = make_invoice(services, world)
    assert fakes.snapshots.calls == [(invoice.invoice_number, "created")]
    assert fakes.notifier.calls == [(world.tenant.id, invoice.invoice_number, "created")]


def test_send_is_idempotent(services, fakes, world) -> None:
    invoice = make_invoice(services, world)
    landlord = actor_for(world.landlord)

    services.lifecycle.send_invoice(invoice.id, landlord)
    result = services.lifecycle.send_invoice(invoice.id, landlord)

    assert result.invoice.status == InvoiceStatus.SENT
    sent = [call for call in fakes.notifier.calls if call[2] == "sent"]
    assert len(sent) == 2


def test_send_paid_invoice_conflicts(services, world) -> None:
    invoice = make_invoice(services, world)
    landlord = actor_for(world.landlord)
    services.lifecycle.mark_invoice_paid(invoice.id, landlord, payment_method="cash")

    with pytest.raises(StateConflictError):
        services.lifecycle.send_invoice(invoice.id, landlord)


def test_mark_paid_stamps_and_settles_shadow_payment(db, services, world) -> None:
    invoice = make_invoice(services, world)
    result = services.lifecycle.mark_invoice_paid(
        invoice.id,
        actor_for(world.landlord),
        payment_method="mobile_money",
        payment_reference="QJK81HS02L",
    )

    assert result.invoice.status == InvoiceStatus.PAID
    assert result.invoice.paid_date == TODAY
    assert result.invoice.payment_method == "mobile_money"
    assert result.invoice.payment_reference == "QJK81HS02L"
    shadow = db.query(Payment).filter(Payment.invoice_id == invoice.id).one()
    assert shadow.status == PaymentStatus.COMPLETED


def test_mark_paid_allowed_from_overdue(services, world) -> None:
    invoice = make_invoice(services, world)
    assert services.lifecycle.mark_overdue(invoice)
    result = services.lifecycle.mark_invoice_paid(invoice.id, actor_for(world.landlord))
    assert result.invoice.status == InvoiceStatus.PAID


def test_terminal_states_block_transitions(services, world) -> None:
    landlord = actor_for(world.landlord)
    cancelled = make_invoice(services, world)
    voided = make_invoice(services, world)
    services.lifecycle.cancel_invoice(cancelled.id, landlord)
    services.lifecycle.void_invoice(voided.id, landlord)

    with pytest.raises(StateConflictError):
        services.lifecycle.mark_invoice_paid(cancelled.id, landlord)
    with pytest.raises(StateConflictError):
        services.lifecycle.send_invoice(voided.id, landlord)
    with pytest.raises(StateConflictError):
        services.lifecycle.cancel_invoice(voided.id, landlord)


def test_delete_unpaid_invoice_keeps_payments(db, services, world) -> None:
    invoice = make_invoice(services, world)
    receipt = f"PENDING-{invoice.invoice_number}"
    services.lifecycle.delete_invoice(invoice.id, actor_for(world.landlord))

    assert db.get(Invoice, invoice.id) is None
    shadow = db.query(Payment).filter(Payment.receipt_number == receipt).one()
    assert shadow.invoice_id is None


def test_delete_paid_invoice_conflicts(db, services, world) -> None:
    invoice = make_invoice(services, world)
    landlord = actor_for(world.landlord)
    services.lifecycle.mark_invoice_paid(invoice.id, landlord)

    with pytest.raises(StateConflictError):
        services.lifecycle.delete_invoice(invoice.id, landlord)
    assert db.get(Invoice, invoice.id) is not None


def test_permission_is_checked_before_any_write(services, world) -> None:
    invoice = make_invoice(services, world)

    with pytest.raises(PermissionDeniedError):
        services.lifecycle.send_invoice(invoice.id, actor_for(world.tenant))
    with pytest.raises(NotFoundError):
        services.lifecycle.cancel_invoice(invoice.id, actor_for(world.idle_agent))
    with pytest.raises(NotFoundError):
        services.lifecycle.cancel_invoice(invoice.id, actor_for(world.landlord2))

    # the assigned agent may act
    result = services.lifecycle.cancel_invoice(invoice.id, actor_for(world.agent))
    assert result.invoice.status == InvoiceStatus.CANCELLED


def test_collision_after_gap_retries_to_next_number(db, services, world) -> None:
    first = make_invoice(services, world)
    second = make_invoice(services, world)
    services.lifecycle.delete_invoice(first.id, actor_for(world.landlord))

    third = make_invoice(services, world)

    assert second.invoice_number == "INV-SAP-2026-10-0002"
    assert third.invoice_number == "INV-SAP-2026-10-0003"


def test_deleting_early_invoices_does_not_block_numbering(db, services, world) -> None:
    landlord = actor_for(world.landlord)
    created = [make_invoice(services, world) for _ in range(10)]
    for invoice in created[:5]:
        services.lifecycle.delete_invoice(invoice.id, landlord)

    fresh = make_invoice(services, world)

    assert fresh.invoice_number == "INV-SAP-2026-10-0011"
    assert fresh.status == InvoiceStatus.SENT


def test_deleted_newest_number_is_not_reissued(db, services, world) -> None:
    make_invoice(services, world)
    second = make_invoice(services, world)
    deleted_number = second.invoice_number
    services.lifecycle.delete_invoice(second.id, actor_for(world.landlord))

    third = make_invoice(services, world)

    assert third.invoice_number == "INV-SAP-2026-10-0003"
    assert third.invoice_number != deleted_number
    shadows = (
        db.query(Payment)
        .filter(Payment.invoice_id == third.id, Payment.receipt_number.startswith("PENDING-"))
        .all()
    )
    assert len(shadows) == 1
    assert shadows[0].receipt_number == "PENDING-INV-SAP-2026-10-0003"

    orphan = db.query(Payment).filter(Payment.receipt_number == f"PENDING-{deleted_number}").one()
    assert orphan.invoice_id is None


def test_stale_sequence_read_is_rejected_by_the_unique_constraint(db, services, world) -> None:
    make_invoice(services, world)
    make_invoice(services, world)
    # every writer sees an empty month, as if it read before the others committed
    services.lifecycle.allocator = SequenceAllocator(lambda scope, prefix: 0, sleep=lambda seconds: None)

    third = make_invoice(services, world)

    assert third.invoice_number == "INV-SAP-2026-10-0003"
    numbers = [row.invoice_number for row in db.query(Invoice.invoice_number)]
    assert len(numbers) == len(set(numbers)) == 3


def test_collision_exhausted_leaves_nothing_behind(db, services, world) -> None:
    make_invoice(services, world)
    services.lifecycle.allocator = SequenceAllocator(
        lambda scope, prefix: 0, max_attempts=1, sleep=lambda seconds: None
    )
    invoices_before = db.query(Invoice).count()
    payments_before = db.query(Payment).count()

    with pytest.raises(CollisionExhaustedError):
        make_invoice(services, world)

    assert db.query(Invoice).count() == invoices_before
    assert db.query(Payment).count() == payments_before


def test_get_invoice_hides_out_of_scope_records(services, world) -> None:
    invoice = make_invoice(services, world)
    assert services.lifecycle.get_invoice(invoice.id, actor_for(world.tenant)).id == invoice.id
    with pytest.raises(NotFoundError):
        services.lifecycle.get_invoice(invoice.id, actor_for(world.other_tenant))
    with pytest.raises(NotFoundError):
        services.lifecycle.get_invoice(424242, actor_for(world.landlord))


def test_transition_table() -> None:
    assert can_transition(InvoiceStatus.SENT, InvoiceStatus.SENT)
    assert can_transition(InvoiceStatus.OVERDUE, InvoiceStatus.PAID)
    assert not can_transition(InvoiceStatus.OVERDUE, InvoiceStatus.SENT)
    assert not can_transition(InvoiceStatus.PAID, InvoiceStatus.CANCELLED)
    assert set(sources_for(InvoiceStatus.PAID)) == {InvoiceStatus.SENT, InvoiceStatus.OVERDUE}
    for terminal in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.VOID):
        assert TRANSITIONS[terminal] == frozenset()


@pytest.mark.parametrize(
    "today, due_day, expected",
    [
        (date(2026, 10, 19), 5, date(2026, 11, 5)),
        (date(2026, 10, 3), 5, date(2026, 10, 5)),
        (date(2026, 10, 5), 5, date(2026, 10, 5)),
        (date(2026, 12, 20), 5, date(2027, 1, 5)),
        (date(2026, 1, 31), 30, date(2026, 2, 28)),
    ],
)
def test_next_due_date(today: date, due_day: int, expected: date) -> None:
    assert next_due_date(today, due_day) == expected
