# services/payment_store.py
"""
Payment Store Adapter - persistence and aggregation for payments.

Payments are never deleted. Linking is a conditional UPDATE that only
matches a payment that is unlinked (or already linked to the same invoice),
which is what keeps a payment from being attached to two invoices.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import IdentifierCollision
from models import Payment, PaymentStatus, SETTLED_STATUSES
from services.sequence import SequenceScope, highest_sequence

MAX_PAGE_SIZE = 100

# shadow payments carry the invoice number, so they keep it reserved after a delete
SHADOW_RECEIPT_PREFIX = "PENDING-"


@dataclass
class PaymentFilters:
     tenant_id: Optional[int] = None
     invoice_id: Optional[int] = None
     status: Optional[PaymentStatus] = None
     unlinked_only: bool = False
     limit: int = 20
     offset: int = 0


class PaymentStore:
     def __init__(self, db: Session):
          self.db = db

     def get(self, payment_id: int) -> Optional[Payment]:
          return self.db.get(Payment, payment_id)

     def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
          return self.db.query(Payment).filter(Payment.transaction_id == transaction_id).first()

     def receipt_taken(self, company_id: int, receipt_number: str) -> bool:
          return (
               self.db.query(Payment.id)
               .filter(Payment.company_id == company_id, Payment.receipt_number == receipt_number)
               .first()
               is not None
          )

     def receipt_numbers(self, company_id: int, prefix: str) -> List[str]:
          rows = (
               self.db.query(Payment.receipt_number)
               .filter(
                    Payment.company_id == company_id,
                    Payment.receipt_number.startswith(prefix, autoescape=True),
               )
               .all()
          )
          return [row.receipt_number for row in rows]

     def last_receipt_sequence(self, scope: SequenceScope, prefix: str) -> int:
          """Highest receipt sequence issued under `prefix` for the company."""
          return highest_sequence(self.receipt_numbers(scope.company_id, prefix), prefix)

     def settled_total(self, invoice_id: int) -> Decimal:
          """Sum of approved/completed payments linked to the invoice."""
          total = (
               self.db.query(func.coalesce(func.sum(Payment.amount), 0))
               .filter(Payment.invoice_id == invoice_id, Payment.status.in_(SETTLED_STATUSES))
               .scalar()
          )
          return Decimal(str(total or 0))

     def list_unlinked_settled(self, company_id: Optional[int] = None) -> List[Payment]:
          """Settled payments with no invoice yet, oldest first."""
          query = self.db.query(Payment).filter(
               Payment.invoice_id.is_(None),
               Payment.status.in_(SETTLED_STATUSES),
          )
          if company_id is not None:
               query = query.filter(Payment.company_id == company_id)
          return query.order_by(Payment.payment_date.asc(), Payment.id.asc()).all()

     def search(
          self,
          filters: PaymentFilters,
          company_id: Optional[int] = None,
          tenant_id: Optional[int] = None,
     ) -> Tuple[List[Payment], int]:
          query = self.db.query(Payment)
          # Scope first
          if company_id is not None:
               query = query.filter(Payment.company_id == company_id)
          if tenant_id is not None:
               query = query.filter(Payment.tenant_id == tenant_id)

          if filters.tenant_id is not None:
               query = query.filter(Payment.tenant_id == filters.tenant_id)
          if filters.invoice_id is not None:
               query = query.filter(Payment.invoice_id == filters.invoice_id)
          if filters.status is not None:
               query = query.filter(Payment.status == filters.status)
          if filters.unlinked_only:
               query = query.filter(Payment.invoice_id.is_(None))

          total = query.count()
          limit = max(1, min(filters.limit, MAX_PAGE_SIZE))
          payments = (
               query.order_by(Payment.payment_date.desc(), Payment.id.desc())
               .offset(max(filters.offset, 0))
               .limit(limit)
               .all()
          )
          return payments, total

     def insert(self, payment: Payment) -> Payment:
          """Raises IdentifierCollision when the receipt number is taken."""
          self.db.add(payment)
          try:
               self.db.flush()
          except IntegrityError:
               self.db.rollback()
               if self.receipt_taken(payment.company_id, payment.receipt_number):
                    raise IdentifierCollision(payment.receipt_number)
               raise
          self.db.commit()
          return payment

     def link(self, payment: Payment, invoice_id: int) -> bool:
          """Attach the payment to an invoice unless it already belongs to another one."""
          updated = (
               self.db.query(Payment)
               .filter(
                    Payment.id == payment.id,
                    or_(Payment.invoice_id.is_(None), Payment.invoice_id == invoice_id),
               )
               .update({"invoice_id": invoice_id, "updated_at": func.now()}, synchronize_session=False)
          )
          self.db.commit()
          self.db.refresh(payment)
          return updated == 1

     def set_status(
          self,
          payment: Payment,
          from_status: PaymentStatus,
          to_status: PaymentStatus,
          **values,
     ) -> bool:
          updated = (
               self.db.query(Payment)
               .filter(Payment.id == payment.id, Payment.status == from_status)
               .update(
                    {"status": to_status, "updated_at": func.now(), **values},
                    synchronize_session=False,
               )
          )
          self.db.commit()
          self.db.refresh(payment)
          return updated == 1
