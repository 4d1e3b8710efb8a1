# services/payments.py
"""
Payment intake - manual entry, approval and gateway confirmations.

Receipts are numbered RCT-{YYYY}-{NNNNN} per company and year. Once a
payment is settled (approved or completed) it is offered to the
reconciliation engine; a failed automatic link is logged and leaves the
payment unlinked.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from models import Invoice, Payment, PaymentMethod, PaymentStatus
from services.access import MANAGING_ROLES, SYSTEM_ACTOR, AccessResolver, Actor
from services.gateway import GatewayConfirmation
from services.invoice_store import InvoiceStore
from services.payment_store import PaymentFilters, PaymentStore
from services.reconciliation import ReconciliationEngine
from services.sequence import Period, SequenceAllocator, SequenceScope
from services.side_effects import fire_and_forget

logger = logging.getLogger(__name__)


@dataclass
class NewPayment:
     tenant_id: int
     amount: Decimal
     payment_method: str = PaymentMethod.CASH.value
     payment_type: str = "rent"
     status: PaymentStatus = PaymentStatus.PENDING
     payment_date: Optional[date] = None
     payment_period: Optional[str] = None
     currency: Optional[str] = None
     invoice_id: Optional[int] = None
     transaction_id: Optional[str] = None
     reference_number: Optional[str] = None
     notes: Optional[str] = None


class PaymentService:
     def __init__(
          self,
          invoices: InvoiceStore,
          payments: PaymentStore,
          access: AccessResolver,
          allocator: SequenceAllocator,
          reconciliation: ReconciliationEngine,
          gateway,
          default_currency: str,
          today: Callable[[], date] = date.today,
     ):
          self.invoices = invoices
          self.payments = payments
          self.access = access
          self.allocator = allocator
          self.reconciliation = reconciliation
          self.gateway = gateway
          self.default_currency = default_currency
          self.today = today

     # ------------------------------------------------------------------
     # Reads
     # ------------------------------------------------------------------

     def list_payments(self, filters: PaymentFilters, actor: Actor) -> Tuple[List[Payment], int]:
          company_id, tenant_id = self.access.payment_company_scope(actor)
          return self.payments.search(filters, company_id=company_id, tenant_id=tenant_id)

     def get_payment(self, payment_id: int, actor: Actor) -> Payment:
          payment = self.payments.get(payment_id)
          if payment is None or not self.access.can_view_payment(actor, payment):
               raise NotFoundError(f"Payment with ID {payment_id} not found")
          return payment

     # ------------------------------------------------------------------
     # Writes
     # ------------------------------------------------------------------

     def _insert_with_receipt(self, company_id: int, payment_date: date, build: Callable[[str], Payment]) -> Payment:
          scope = SequenceScope(company_id=company_id)
          period = Period.of(payment_date, monthly=False)
          return self.allocator.allocate_and_insert(
               scope, period, lambda receipt: self.payments.insert(build(receipt))
          )

     def record_payment(self, data: NewPayment, actor: Actor) -> Payment:
          """Manual payment entry by staff."""
          if actor.role not in MANAGING_ROLES:
               raise PermissionDeniedError("You do not have permission to record payments")
          amount = Decimal(str(data.amount))
          if amount <= 0:
               raise ValidationError("Payment amount must be greater than zero")
          if data.status == PaymentStatus.FAILED:
               raise ValidationError("A new payment cannot be recorded as failed")

          tenant = self.access.user_for(data.tenant_id)
          if tenant is None or not tenant.is_tenant:
               raise NotFoundError(f"Tenant with ID {data.tenant_id} not found")
          if not self.access.has_tenant_access(actor, tenant):
               raise PermissionDeniedError("You do not have access to this tenant")

          invoice: Optional[Invoice] = None
          if data.invoice_id is not None:
               invoice = self.invoices.get(data.invoice_id)
               if invoice is None:
                    raise NotFoundError(f"Invoice with ID {data.invoice_id} not found")
               self.access.ensure_can_manage_invoice(actor, invoice)
               if invoice.issued_to != tenant.id:
                    raise ValidationError("Invoice was issued to a different tenant")
               if not invoice.is_open:
                    raise StateConflictError(
                         f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot take payments"
                    )
          if data.transaction_id and self.payments.get_by_transaction_id(data.transaction_id):
               raise StateConflictError(f"Transaction {data.transaction_id} is already recorded")

          company_id = actor.company_id if actor.company_id is not None else tenant.company_id
          if company_id is None:
               raise ValidationError("Payment has no company association")
          payment_date = data.payment_date or self.today()
          unit = tenant.assigned_units[0] if tenant.assigned_units else None
          settled = data.status in (PaymentStatus.APPROVED, PaymentStatus.COMPLETED)

          def build(receipt_number: str) -> Payment:
               return Payment(
                    company_id=company_id,
                    tenant_id=tenant.id,
                    property_id=invoice.property_id if invoice else (unit.property_id if unit else None),
                    unit_id=invoice.unit_id if invoice else (unit.id if unit else None),
                    amount=amount,
                    currency=(data.currency or (invoice.currency if invoice else self.default_currency)).upper(),
                    payment_method=data.payment_method,
                    payment_type=data.payment_type,
                    status=data.status,
                    payment_date=payment_date,
                    payment_period=data.payment_period or payment_date.strftime("%B %Y"),
                    receipt_number=receipt_number,
                    transaction_id=data.transaction_id,
                    reference_number=data.reference_number,
                    received_from=tenant.full_name,
                    notes=data.notes,
                    created_by=actor.user_id,
                    processed_by=actor.user_id if settled else None,
                    processed_at=datetime.now() if settled else None,
               )

          payment = self._insert_with_receipt(company_id, payment_date, build)
          logger.info("Payment %s recorded for tenant %s (%s %s)", payment.receipt_number, tenant.id, payment.currency, amount)

          if invoice is not None:
               self.reconciliation.link_payment(payment.id, invoice.id, actor)
          elif settled:
               fire_and_forget("auto_link", self.reconciliation.reconcile_payment, payment, actor)
          return payment

     def approve_payment(self, payment_id: int, actor: Actor) -> Payment:
          payment = self.get_payment(payment_id, actor)
          if actor.role not in MANAGING_ROLES:
               raise PermissionDeniedError("You do not have permission to approve payments")
          approved = self.payments.set_status(
               payment,
               PaymentStatus.PENDING,
               PaymentStatus.APPROVED,
               processed_by=actor.user_id or None,
               processed_at=datetime.now(),
          )
          if not approved:
               raise StateConflictError(
                    f"Payment {payment.receipt_number} is {payment.status.value} and cannot be approved"
               )
          logger.info("Payment %s approved by user %s", payment.receipt_number, actor.user_id)

          if payment.invoice_id is not None:
               invoice = self.invoices.get(payment.invoice_id)
               fire_and_forget("settle_invoice", self.reconciliation.lifecycle.settle_if_covered, invoice, payment)
          else:
               fire_and_forget("auto_link", self.reconciliation.reconcile_payment, payment, actor)
          return payment

     # ------------------------------------------------------------------
     # Gateway
     # ------------------------------------------------------------------

     def create_checkout(self, invoice_id: int, actor: Actor, redirect_base: str) -> dict:
          invoice = self.invoices.get(invoice_id)
          if invoice is None or not self.access.can_view_invoice(actor, invoice):
               raise NotFoundError(f"Invoice with ID {invoice_id} not found")
          if not invoice.is_open:
               raise StateConflictError(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot be paid online"
               )
          checkout = self.gateway.create_checkout(invoice, invoice.recipient, redirect_base)
          logger.info("Checkout %s opened for invoice %s", checkout["checkout_id"], invoice.invoice_number)
          return checkout

     def record_gateway_payment(self, checkout_id: str) -> Optional[Payment]:
          """
          Record a confirmed gateway payment once per transaction.

          The checkout is verified with the gateway first; unsuccessful
          checkouts are ignored and None is returned. A repeated confirmation
          returns the payment already on file.
          """
          confirmation: GatewayConfirmation = self.gateway.verify(checkout_id)
          if not confirmation.succeeded:
               logger.info("Checkout %s not successful (%s); nothing recorded", checkout_id, confirmation.status)
               return None

          existing = self.payments.get_by_transaction_id(confirmation.reference)
          if existing is not None:
               return existing

          invoice_id = confirmation.metadata.get("invoice_id")
          invoice = self.invoices.get(int(invoice_id)) if invoice_id is not None else None
          if invoice is None:
               raise NotFoundError(f"Checkout {checkout_id} does not reference a known invoice")

          payment_date = self.today()

          def build(receipt_number: str) -> Payment:
               return Payment(
                    company_id=invoice.company_id,
                    tenant_id=invoice.issued_to,
                    property_id=invoice.property_id,
                    unit_id=invoice.unit_id,
                    amount=confirmation.amount,
                    currency=confirmation.currency.upper(),
                    payment_method=PaymentMethod.ONLINE.value,
                    payment_type="rent" if invoice.invoice_type == "monthly_rent" else "other",
                    status=PaymentStatus.APPROVED,
                    payment_date=payment_date,
                    payment_period=payment_date.strftime("%B %Y"),
                    receipt_number=receipt_number,
                    transaction_id=confirmation.reference,
                    reference_number=checkout_id,
                    received_from=invoice.recipient.full_name if invoice.recipient else None,
                    notes=f"Online payment for invoice {invoice.invoice_number}",
                    processed_at=datetime.now(),
               )

          try:
               payment = self._insert_with_receipt(invoice.company_id, payment_date, build)
          except IntegrityError:
               # Concurrent delivery of the same confirmation
               existing = self.payments.get_by_transaction_id(confirmation.reference)
               if existing is None:
                    raise
               return existing
          logger.info(
               "Gateway payment %s recorded for invoice %s", payment.receipt_number, invoice.invoice_number
          )
          fire_and_forget("gateway_link", self.reconciliation.link_payment, payment.id, invoice.id, SYSTEM_ACTOR)
          return payment
