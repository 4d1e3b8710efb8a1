# services/reconciliation.py
"""
Reconciliation Engine - attach payments to the invoices they settle.

`link_payment` is the only path that writes a payment's invoice link from
outside invoice creation. `auto_reconcile_payments` feeds it exact-amount
matches: for each unlinked settled payment, the earliest-due open invoice of
the same tenant whose total equals the payment amount. Payments without a
match stay unlinked. Partial and split payments are never matched.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from errors import (
     BillingError,
     NotFoundError,
     PermissionDeniedError,
     StateConflictError,
     ValidationError,
)
from models import Invoice, InvoiceStatus, Payment, UserRole
from services.access import AccessResolver, Actor
from services.invoice_store import InvoiceStore
from services.lifecycle import InvoiceLifecycleManager
from services.payment_store import PaymentStore

logger = logging.getLogger(__name__)

OPEN_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)
CLOSED_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.VOID)

RECONCILING_ROLES = {
     UserRole.SUPER_ADMIN.value,
     UserRole.AGENCY_ADMIN.value,
     UserRole.LANDLORD.value,
     UserRole.AGENT.value,
}


@dataclass
class LinkResult:
     payment: Payment
     invoice: Invoice
     invoice_paid: bool


@dataclass
class ReconcileResult:
     examined: int = 0
     reconciled: int = 0
     invoices_paid: int = 0
     failures: List[str] = field(default_factory=list)


class ReconciliationEngine:
     def __init__(
          self,
          invoices: InvoiceStore,
          payments: PaymentStore,
          access: AccessResolver,
          lifecycle: InvoiceLifecycleManager,
     ):
          self.invoices = invoices
          self.payments = payments
          self.access = access
          self.lifecycle = lifecycle

     def link_payment(self, payment_id: int, invoice_id: int, actor: Actor) -> LinkResult:
          """
          Link a payment to an invoice and promote the invoice when covered.

          Raises:
               NotFoundError: either record is missing or out of scope
               PermissionDeniedError: the actor may not change the invoice
               ValidationError: payer and invoice recipient differ
               StateConflictError: payment linked elsewhere, or invoice closed
          """
          payment = self.payments.get(payment_id)
          if payment is None:
               raise NotFoundError(f"Payment with ID {payment_id} not found")
          invoice = self.invoices.get(invoice_id)
          if invoice is None:
               raise NotFoundError(f"Invoice with ID {invoice_id} not found")
          self.access.ensure_can_manage_invoice(actor, invoice)

          if payment.tenant_id != invoice.issued_to:
               raise ValidationError("Payment was made by a different tenant than the invoice recipient")
          if payment.invoice_id is not None and payment.invoice_id != invoice.id:
               raise StateConflictError(
                    f"Payment {payment.receipt_number} is already linked to another invoice"
               )
          if invoice.status in CLOSED_STATUSES:
               raise StateConflictError(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot take payments"
               )

          if not self.payments.link(payment, invoice.id):
               raise StateConflictError(
                    f"Payment {payment.receipt_number} was linked to another invoice concurrently"
               )
          logger.info("Payment %s linked to invoice %s", payment.receipt_number, invoice.invoice_number)

          paid = self.lifecycle.settle_if_covered(invoice, payment)
          return LinkResult(payment=payment, invoice=invoice, invoice_paid=paid)

     def _reconcile_company(self, actor: Actor) -> Optional[int]:
          if actor.role not in RECONCILING_ROLES:
               raise PermissionDeniedError(f"Role '{actor.role}' may not reconcile payments")
          if actor.is_super_admin:
               return None
          if actor.company_id is None:
               raise PermissionDeniedError("A company association is required to reconcile payments")
          return actor.company_id

     def auto_reconcile_payments(self, actor: Actor) -> ReconcileResult:
          """Match every unlinked settled payment in scope to an open invoice."""
          company_id = self._reconcile_company(actor)
          result = ReconcileResult()

          open_by_tenant: Dict[int, List[Invoice]] = defaultdict(list)
          for invoice in self.invoices.list_by_status(OPEN_STATUSES, company_id):
               open_by_tenant[invoice.issued_to].append(invoice)

          for payment in self.payments.list_unlinked_settled(company_id):
               result.examined += 1
               candidates = open_by_tenant.get(payment.tenant_id, [])
               target = _exact_match(payment, candidates)
               if target is None:
                    continue
               try:
                    link = self.link_payment(payment.id, target.id, actor)
               except BillingError as exc:
                    logger.warning(
                         "Auto-reconcile skipped payment %s -> invoice %s: %s",
                         payment.receipt_number, target.invoice_number, exc.detail,
                    )
                    result.failures.append(f"{payment.receipt_number}: {exc.detail}")
                    continue
               result.reconciled += 1
               if link.invoice_paid or not link.invoice.is_open:
                    candidates.remove(target)
               if link.invoice_paid:
                    result.invoices_paid += 1

          logger.info(
               "Auto-reconcile finished: %d examined, %d reconciled, %d invoices paid",
               result.examined, result.reconciled, result.invoices_paid,
          )
          return result

     def reconcile_payment(self, payment: Payment, actor: Actor) -> Optional[LinkResult]:
          """Single-payment exact match, used right after a payment is settled."""
          if payment.invoice_id is not None or not payment.is_settled:
               return None
          candidates = [
               invoice
               for invoice in self.invoices.list_for_tenant(payment.tenant_id, OPEN_STATUSES)
               if invoice.company_id == payment.company_id
          ]
          target = _exact_match(payment, candidates)
          if target is None:
               return None
          return self.link_payment(payment.id, target.id, actor)


def _exact_match(payment: Payment, candidates: List[Invoice]) -> Optional[Invoice]:
     # candidates arrive ordered by due date, oldest first
     for invoice in candidates:
          if invoice.is_open and invoice.total_amount == payment.amount:
               return invoice
     return None
