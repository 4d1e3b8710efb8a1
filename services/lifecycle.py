# services/lifecycle.py
"""
Invoice Lifecycle Manager - business logic for invoice state changes.

Every status change is checked against TRANSITIONS and then written with a
conditional update (InvoiceStore.transition), so the table is the single
source of truth for what may follow what:

     draft    -> sent, cancelled, void         (legacy rows only)
     sent     -> sent, overdue, paid, cancelled, void
     overdue  -> paid, cancelled, void
     paid, cancelled, void                     (terminal)

Permission is re-derived from the actor on every call. Side effects
(shadow payment, verification token, snapshot, notification) run after the
invoice commit through fire_and_forget and never undo the invoice write.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from models import (
     Invoice,
     InvoiceLineItem,
     InvoiceStatus,
     Payment,
     PaymentMethod,
     PaymentStatus,
     User,
)
from services.access import AccessResolver, Actor
from services.invoice_store import InvoiceFilters, InvoiceStore
from services.payment_store import SHADOW_RECEIPT_PREFIX, PaymentStore
from services.preferences import PreferenceReader
from services.sequence import Period, SequenceAllocator, SequenceScope, generate_property_code
from services.side_effects import SideEffectResult, fire_and_forget
from services.verification import VerificationTokenIssuer

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
     InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED, InvoiceStatus.VOID}),
     InvoiceStatus.SENT: frozenset({
          InvoiceStatus.SENT,
          InvoiceStatus.OVERDUE,
          InvoiceStatus.PAID,
          InvoiceStatus.CANCELLED,
          InvoiceStatus.VOID,
     }),
     InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.VOID}),
     InvoiceStatus.PAID: frozenset(),
     InvoiceStatus.CANCELLED: frozenset(),
     InvoiceStatus.VOID: frozenset(),
}

CENT = Decimal("0.01")
DEFAULT_DESCRIPTION = "Monthly Rent and Charges"


def sources_for(target: InvoiceStatus) -> List[InvoiceStatus]:
     """States from which `target` may be entered."""
     return [status for status, nexts in TRANSITIONS.items() if target in nexts]


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
     return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(invoice: Invoice, target: InvoiceStatus) -> None:
     if not can_transition(invoice.status, target):
          raise StateConflictError(
               f"Invoice {invoice.invoice_number} cannot move from "
               f"'{invoice.status.value}' to '{target.value}'"
          )


def _money(value) -> Decimal:
     return Decimal(str(value)).quantize(CENT)


@dataclass
class UtilityCharge:
     utility_type: str
     amount: Decimal
     included: bool = True
     description: Optional[str] = None


@dataclass
class ChargeItem:
     description: str
     unit_price: Decimal
     quantity: Decimal = Decimal("1")


@dataclass
class NewInvoice:
     """Caller input for create_invoice. Unset fields take issuer/tenant defaults."""
     tenant_id: Optional[int]
     rent_amount: Optional[Decimal] = None
     utility_bills: List[UtilityCharge] = field(default_factory=list)
     items: List[ChargeItem] = field(default_factory=list)
     tax_amount: Decimal = Decimal("0")
     discount_amount: Decimal = Decimal("0")
     total_amount: Optional[Decimal] = None
     currency: Optional[str] = None
     issue_date: Optional[date] = None
     due_date: Optional[date] = None
     title: Optional[str] = None
     description: Optional[str] = None
     invoice_type: str = "monthly_rent"
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     channel: str = "api"


@dataclass
class InvoiceResult:
     invoice: Invoice
     side_effects: List[SideEffectResult] = field(default_factory=list)

     @property
     def warnings(self) -> List[str]:
          return [str(effect.warning) for effect in self.side_effects if not effect.ok]


@dataclass
class Totals:
     subtotal: Decimal
     tax_amount: Decimal
     discount_amount: Decimal
     total_amount: Decimal
     line_items: List[dict]


def build_line_items(data: NewInvoice) -> Totals:
     """
     Itemise an invoice request and compute its totals.

     The resulting line items always sum to total_amount: tax is its own
     line and the discount is a negative line.

     Raises:
          ValidationError: negative amounts, a non-positive total, or a
               total_amount that disagrees with the itemisation.
     """
     tax = _money(data.tax_amount or 0)
     discount = _money(data.discount_amount or 0)
     if tax < 0 or discount < 0:
          raise ValidationError("Tax and discount amounts cannot be negative")

     lines: List[dict] = []
     if data.rent_amount is not None:
          rent = _money(data.rent_amount)
          if rent < 0:
               raise ValidationError("Rent amount cannot be negative")
          if rent > 0:
               lines.append({
                    "description": "Monthly Rent",
                    "quantity": Decimal("1"),
                    "unit_price": rent,
                    "total_price": rent,
                    "item_type": "rent",
               })

     for bill in data.utility_bills:
          amount = _money(bill.amount)
          if amount < 0:
               raise ValidationError(f"Utility amount for {bill.utility_type} cannot be negative")
          if not bill.included or amount == 0:
               continue
          lines.append({
               "description": bill.description or f"{bill.utility_type.title()} Bill",
               "quantity": Decimal("1"),
               "unit_price": amount,
               "total_price": amount,
               "item_type": "utility",
               "utility_type": bill.utility_type,
          })

     for item in data.items:
          quantity = Decimal(str(item.quantity))
          unit_price = _money(item.unit_price)
          if quantity <= 0 or unit_price < 0:
               raise ValidationError(f"Invalid quantity or price for item '{item.description}'")
          lines.append({
               "description": item.description,
               "quantity": quantity,
               "unit_price": unit_price,
               "total_price": _money(quantity * unit_price),
               "item_type": "item",
          })

     if not lines and data.total_amount is not None:
          # Bare total: one line carrying the pre-tax amount
          base = _money(data.total_amount) - tax + discount
          if base <= 0:
               raise ValidationError("Invoice total must be greater than zero")
          lines.append({
               "description": data.description or DEFAULT_DESCRIPTION,
               "quantity": Decimal("1"),
               "unit_price": base,
               "total_price": base,
               "item_type": "item",
          })

     subtotal = sum((line["total_price"] for line in lines), Decimal("0.00"))
     total = subtotal + tax - discount

     if data.total_amount is not None and _money(data.total_amount) != total:
          raise ValidationError(
               f"total_amount {_money(data.total_amount)} does not match the itemised total {total}"
          )
     if total <= 0:
          raise ValidationError("Invoice total must be greater than zero")

     if tax > 0:
          lines.append({
               "description": "Tax",
               "quantity": Decimal("1"),
               "unit_price": tax,
               "total_price": tax,
               "item_type": "tax",
          })
     if discount > 0:
          lines.append({
               "description": "Discount",
               "quantity": Decimal("1"),
               "unit_price": -discount,
               "total_price": -discount,
               "item_type": "discount",
          })

     return Totals(
          subtotal=subtotal,
          tax_amount=tax,
          discount_amount=discount,
          total_amount=total,
          line_items=lines,
     )


def next_due_date(today: date, due_day: int) -> date:
     """Next occurrence of `due_day` on or after today, clamped to month length."""
     due_day = min(max(due_day, 1), 31)
     year, month = today.year, today.month
     day = min(due_day, calendar.monthrange(year, month)[1])
     if day >= today.day:
          return date(year, month, day)
     if month == 12:
          year, month = year + 1, 1
     else:
          month += 1
     return date(year, month, min(due_day, calendar.monthrange(year, month)[1]))


class InvoiceLifecycleManager:
     """Creates invoices and drives them through TRANSITIONS."""

     def __init__(
          self,
          invoices: InvoiceStore,
          payments: PaymentStore,
          access: AccessResolver,
          preferences: PreferenceReader,
          allocator: SequenceAllocator,
          verification: VerificationTokenIssuer,
          notifier,
          snapshots,
          today: Callable[[], date] = date.today,
     ):
          self.invoices = invoices
          self.payments = payments
          self.access = access
          self.preferences = preferences
          self.allocator = allocator
          self.verification = verification
          self.notifier = notifier
          self.snapshots = snapshots
          self.today = today

     # ------------------------------------------------------------------
     # Reads
     # ------------------------------------------------------------------

     def get_invoice(self, invoice_id: int, actor: Actor) -> Invoice:
          invoice = self.invoices.get(invoice_id)
          if invoice is None or not self.access.can_view_invoice(actor, invoice):
               raise NotFoundError(f"Invoice with ID {invoice_id} not found")
          return invoice

     def list_invoices(self, filters: InvoiceFilters, actor: Actor) -> Tuple[List[Invoice], int]:
          scope = self.access.invoice_scope(actor)
          return self.invoices.search(filters, scope)

     def _load_for_change(self, invoice_id: int, actor: Actor) -> Invoice:
          invoice = self.invoices.get(invoice_id)
          if invoice is None:
               raise NotFoundError(f"Invoice with ID {invoice_id} not found")
          self.access.ensure_can_manage_invoice(actor, invoice)
          return invoice

     # ------------------------------------------------------------------
     # Create
     # ------------------------------------------------------------------

     def create_invoice(self, data: NewInvoice, actor: Actor) -> InvoiceResult:
          """
          Create an invoice in status SENT with its line items.

          Args:
               data: amounts, parties and optional overrides
               actor: the issuing party

          Returns:
               InvoiceResult with the committed invoice and the outcome of
               each best-effort side effect.

          Raises:
               ValidationError, NotFoundError, PermissionDeniedError before any
               write; CollisionExhaustedError when no unique number was found.
          """
          if data.tenant_id is None:
               raise ValidationError("tenant_id is required")
          tenant = self.access.user_for(data.tenant_id)
          if tenant is None:
               raise NotFoundError(f"Tenant with ID {data.tenant_id} not found")
          if not tenant.is_tenant:
               raise ValidationError(f"User {tenant.id} is not a tenant")
          if not self.access.has_tenant_access(actor, tenant):
               raise PermissionDeniedError("You do not have access to this tenant")

          company_id = actor.company_id
          if company_id is None and actor.is_super_admin:
               company_id = tenant.company_id
          if company_id is None:
               raise ValidationError("Issuer has no company association")

          totals = build_line_items(data)
          prefs = self.preferences.for_user(actor.user_id)
          today = self.today()
          issue_date = data.issue_date or today
          due_date = data.due_date or next_due_date(issue_date, prefs.default_rent_due_day)
          if due_date < issue_date:
               raise ValidationError("due_date cannot be before issue_date")

          property_id, unit_id = self._resolve_location(tenant, data)
          prop = self.access.property_for(property_id)
          if property_id is not None and prop is None:
               raise NotFoundError(f"Property with ID {property_id} not found")

          scope = SequenceScope(
               company_id=company_id,
               property_code=generate_property_code(prop.name) if prop is not None else None,
          )
          metadata = {
               "channel": data.channel,
               "rent_amount": str(_money(data.rent_amount)) if data.rent_amount is not None else None,
               "utility_bills": [
                    {
                         "utility_type": bill.utility_type,
                         "amount": str(_money(bill.amount)),
                         "included": bill.included,
                    }
                    for bill in data.utility_bills
               ],
          }

          def insert(invoice_number: str) -> Invoice:
               invoice = Invoice(
                    company_id=company_id,
                    invoice_number=invoice_number,
                    title=data.title or f"Invoice for {tenant.first_name} {tenant.last_name}",
                    description=data.description or DEFAULT_DESCRIPTION,
                    invoice_type=data.invoice_type or "monthly_rent",
                    issued_by=actor.user_id,
                    issued_to=tenant.id,
                    property_id=property_id,
                    unit_id=unit_id,
                    currency=(data.currency or prefs.default_currency).upper(),
                    subtotal=totals.subtotal,
                    tax_amount=totals.tax_amount,
                    discount_amount=totals.discount_amount,
                    total_amount=totals.total_amount,
                    issue_date=issue_date,
                    due_date=due_date,
                    status=InvoiceStatus.SENT,
                    invoice_metadata=metadata,
               )
               line_items = [
                    InvoiceLineItem(position=position, **line)
                    for position, line in enumerate(totals.line_items)
               ]
               return self.invoices.insert_with_line_items(invoice, line_items)

          invoice = self.allocator.allocate_and_insert(scope, Period.of(issue_date), insert)
          logger.info(
               "Invoice %s created for tenant %s (total %s %s)",
               invoice.invoice_number, tenant.id, invoice.currency, invoice.total_amount,
          )

          effects = [
               fire_and_forget("shadow_payment", self._create_shadow_payment, invoice, actor),
               fire_and_forget("verification_token", self.verification.ensure_token, invoice),
               fire_and_forget("snapshot", self.snapshots.record, invoice, "created"),
               fire_and_forget("notification", self.notifier.notify, tenant, invoice, "created"),
          ]
          return InvoiceResult(invoice, effects)

     def _resolve_location(self, tenant: User, data: NewInvoice) -> Tuple[Optional[int], Optional[int]]:
          if data.unit_id is not None:
               unit = self.access.unit_for(data.unit_id)
               if unit is None:
                    raise NotFoundError(f"Unit with ID {data.unit_id} not found")
               if data.property_id is not None and unit.property_id != data.property_id:
                    raise ValidationError("Unit does not belong to the given property")
               return unit.property_id, unit.id
          if data.property_id is not None:
               return data.property_id, None
          if tenant.assigned_units:
               unit = tenant.assigned_units[0]
               return unit.property_id, unit.id
          return None, None

     def _create_shadow_payment(self, invoice: Invoice, actor: Actor) -> Payment:
          payment = Payment(
               company_id=invoice.company_id,
               tenant_id=invoice.issued_to,
               property_id=invoice.property_id,
               unit_id=invoice.unit_id,
               invoice_id=invoice.id,
               amount=invoice.total_amount,
               currency=invoice.currency,
               payment_method=PaymentMethod.CASH.value,
               payment_type="rent" if invoice.invoice_type == "monthly_rent" else "other",
               status=PaymentStatus.PENDING,
               payment_date=invoice.due_date,
               payment_period=invoice.due_date.strftime("%B %Y"),
               receipt_number=f"{SHADOW_RECEIPT_PREFIX}{invoice.invoice_number}",
               notes=f"Awaiting payment for invoice {invoice.invoice_number}",
               created_by=actor.user_id or None,
          )
          return self.payments.insert(payment)

     # ------------------------------------------------------------------
     # Transitions
     # ------------------------------------------------------------------

     def _transition(self, invoice: Invoice, target: InvoiceStatus, **values) -> None:
          ensure_transition(invoice, target)
          previous = invoice.status
          if not self.invoices.transition(invoice, sources_for(target), target, **values):
               # Another writer moved it first; report against the fresh state
               raise StateConflictError(
                    f"Invoice {invoice.invoice_number} is now '{invoice.status.value}' "
                    f"and cannot move to '{target.value}'"
               )
          logger.info(
               "Invoice %s: %s -> %s", invoice.invoice_number, previous.value, target.value
          )

     def send_invoice(self, invoice_id: int, actor: Actor) -> InvoiceResult:
          """Re-send an active invoice. Safe to repeat."""
          invoice = self._load_for_change(invoice_id, actor)
          self._transition(invoice, InvoiceStatus.SENT)
          effects = [
               fire_and_forget("notification", self.notifier.notify, invoice.recipient, invoice, "sent"),
          ]
          return InvoiceResult(invoice, effects)

     def mark_invoice_paid(
          self,
          invoice_id: int,
          actor: Actor,
          payment_method: Optional[str] = None,
          payment_reference: Optional[str] = None,
          paid_date: Optional[date] = None,
     ) -> InvoiceResult:
          invoice = self._load_for_change(invoice_id, actor)
          self._transition(
               invoice,
               InvoiceStatus.PAID,
               paid_date=paid_date or self.today(),
               payment_method=payment_method,
               payment_reference=payment_reference,
          )
          effects = [
               fire_and_forget("shadow_settlement", self._settle_shadow_payment, invoice, actor),
               fire_and_forget("snapshot", self.snapshots.record, invoice, "paid"),
               fire_and_forget("notification", self.notifier.notify, invoice.recipient, invoice, "paid"),
          ]
          return InvoiceResult(invoice, effects)

     def _settle_shadow_payment(self, invoice: Invoice, actor: Actor) -> bool:
          shadow = next(
               (
                    payment for payment in invoice.payments
                    if payment.receipt_number == f"{SHADOW_RECEIPT_PREFIX}{invoice.invoice_number}"
               ),
               None,
          )
          if shadow is None:
               return False
          values = {
               "processed_by": actor.user_id or None,
               "processed_at": datetime.now(),
               "reference_number": invoice.payment_reference,
          }
          if invoice.payment_method:
               values["payment_method"] = invoice.payment_method
          return self.payments.set_status(shadow, PaymentStatus.PENDING, PaymentStatus.COMPLETED, **values)

     def cancel_invoice(self, invoice_id: int, actor: Actor) -> InvoiceResult:
          invoice = self._load_for_change(invoice_id, actor)
          self._transition(invoice, InvoiceStatus.CANCELLED)
          return InvoiceResult(invoice)

     def void_invoice(self, invoice_id: int, actor: Actor) -> InvoiceResult:
          invoice = self._load_for_change(invoice_id, actor)
          self._transition(invoice, InvoiceStatus.VOID)
          return InvoiceResult(invoice)

     def delete_invoice(self, invoice_id: int, actor: Actor) -> None:
          invoice = self._load_for_change(invoice_id, actor)
          if invoice.status == InvoiceStatus.PAID:
               raise StateConflictError(f"Invoice {invoice.invoice_number} is paid and cannot be deleted")
          number = invoice.invoice_number
          self.invoices.delete(invoice)
          logger.info("Invoice %s deleted by user %s", number, actor.user_id)

     # ------------------------------------------------------------------
     # Hooks for reconciliation and the overdue sweep
     # ------------------------------------------------------------------

     def settle_if_covered(self, invoice: Invoice, payment: Payment) -> bool:
          """
          Promote `invoice` to PAID when its settled payments cover the total.

          Method and reference are stamped from `payment`, the payment whose
          link or approval crossed the threshold. Returns True on promotion.
          Callers have already committed the link or approval, so losing the
          promotion to another writer returns False instead of raising.
          """
          if not invoice.is_open:
               return False
          settled = self.payments.settled_total(invoice.id)
          if settled < invoice.total_amount:
               return False
          promoted = self.invoices.transition(
               invoice,
               sources_for(InvoiceStatus.PAID),
               InvoiceStatus.PAID,
               paid_date=payment.payment_date or self.today(),
               payment_method=payment.payment_method,
               payment_reference=payment.receipt_number,
          )
          if not promoted:
               logger.info(
                    "Invoice %s moved to '%s' before payment %s could settle it",
                    invoice.invoice_number, invoice.status.value, payment.receipt_number,
               )
               return False
          logger.info("Invoice %s settled by payment %s", invoice.invoice_number, payment.receipt_number)
          fire_and_forget("snapshot", self.snapshots.record, invoice, "paid")
          fire_and_forget("notification", self.notifier.notify, invoice.recipient, invoice, "paid")
          return True

     def mark_overdue(self, invoice: Invoice) -> bool:
          """SENT -> OVERDUE. False when the invoice already left SENT."""
          if invoice.status != InvoiceStatus.SENT:
               return False
          return self.invoices.transition(invoice, [InvoiceStatus.SENT], InvoiceStatus.OVERDUE)
