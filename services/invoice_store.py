# services/invoice_store.py
"""
Invoice Store Adapter - persistence for invoices and their line items.

An invoice and its line items are flushed together and committed as one
unit. Status changes go through `transition`, a conditional UPDATE that only
matches rows still in one of the expected source states, so two concurrent
writers cannot both move the same invoice.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, selectinload

from errors import IdentifierCollision
from models import Invoice, InvoiceLineItem, InvoiceStatus, Property
from services.access import InvoiceScope
from services.payment_store import SHADOW_RECEIPT_PREFIX, PaymentStore
from services.sequence import SequenceScope, highest_sequence

MAX_PAGE_SIZE = 100

_SORT_COLUMNS = {
     "created_at": Invoice.created_at,
     "due_date": Invoice.due_date,
     "total_amount": Invoice.total_amount,
     "invoice_number": Invoice.invoice_number,
}


@dataclass
class InvoiceFilters:
     tenant_id: Optional[int] = None
     property_id: Optional[int] = None
     property_ids: List[int] = field(default_factory=list)
     unit_id: Optional[int] = None
     status: Optional[InvoiceStatus] = None
     invoice_type: Optional[str] = None
     search_query: Optional[str] = None
     sort_by: str = "created_at"
     sort_order: str = "desc"
     limit: int = 20
     offset: int = 0


class InvoiceStore:
     def __init__(self, db: Session, payments: Optional[PaymentStore] = None):
          self.db = db
          self.payments = payments or PaymentStore(db)

     # ------------------------------------------------------------------
     # Lookups
     # ------------------------------------------------------------------

     def get(self, invoice_id: int) -> Optional[Invoice]:
          return self.db.get(Invoice, invoice_id)

     def number_taken(self, company_id: int, invoice_number: str) -> bool:
          return (
               self.db.query(Invoice.id)
               .filter(Invoice.company_id == company_id, Invoice.invoice_number == invoice_number)
               .first()
               is not None
          )

     def last_sequence(self, scope: SequenceScope, prefix: str) -> int:
          """
          Highest sequence issued under `prefix` for the company.

          Deleted invoices leave their shadow payment behind, and its receipt
          still holds the number, so those receipts are read as well.
          """
          numbers = [
               row.invoice_number
               for row in self.db.query(Invoice.invoice_number).filter(
                    Invoice.company_id == scope.company_id,
                    Invoice.invoice_number.startswith(prefix, autoescape=True),
               )
          ]
          shadow_prefix = SHADOW_RECEIPT_PREFIX + prefix
          reserved = self.payments.receipt_numbers(scope.company_id, shadow_prefix)
          return max(highest_sequence(numbers, prefix), highest_sequence(reserved, shadow_prefix))

     def list_for_tenant(
          self,
          tenant_id: int,
          statuses: Optional[Iterable[InvoiceStatus]] = None,
     ) -> List[Invoice]:
          query = self.db.query(Invoice).filter(Invoice.issued_to == tenant_id)
          if statuses is not None:
               query = query.filter(Invoice.status.in_(list(statuses)))
          return query.order_by(Invoice.due_date.asc(), Invoice.id.asc()).all()

     def list_by_status(
          self,
          statuses: Sequence[InvoiceStatus],
          company_id: Optional[int] = None,
     ) -> List[Invoice]:
          """Invoices in any of `statuses`, oldest due date first."""
          query = self.db.query(Invoice).filter(Invoice.status.in_(list(statuses)))
          if company_id is not None:
               query = query.filter(Invoice.company_id == company_id)
          return query.order_by(Invoice.due_date.asc(), Invoice.id.asc()).all()

     def search(self, filters: InvoiceFilters, scope: InvoiceScope) -> Tuple[List[Invoice], int]:
          """Role-scoped listing. The scope is applied before any caller filter."""
          if scope.empty:
               return [], 0

          query = self._scoped_query(scope)

          if filters.tenant_id is not None:
               query = query.filter(Invoice.issued_to == filters.tenant_id)
          if filters.property_ids:
               query = query.filter(Invoice.property_id.in_(filters.property_ids))
          elif filters.property_id is not None:
               query = query.filter(Invoice.property_id == filters.property_id)
          if filters.unit_id is not None:
               query = query.filter(Invoice.unit_id == filters.unit_id)
          if filters.status is not None:
               query = query.filter(Invoice.status == filters.status)
          if filters.invoice_type:
               query = query.filter(Invoice.invoice_type == filters.invoice_type)
          if filters.search_query:
               term = f"%{filters.search_query.strip()}%"
               query = query.filter(
                    or_(
                         Invoice.invoice_number.ilike(term),
                         Invoice.title.ilike(term),
                         Invoice.description.ilike(term),
                    )
               )

          total = query.count()

          column = _SORT_COLUMNS.get(filters.sort_by, Invoice.created_at)
          ordering = column.asc() if filters.sort_order == "asc" else column.desc()
          limit = max(1, min(filters.limit, MAX_PAGE_SIZE))
          invoices = (
               query.options(selectinload(Invoice.line_items))
               .order_by(ordering, Invoice.invoice_number.desc())
               .offset(max(filters.offset, 0))
               .limit(limit)
               .all()
          )
          return invoices, total

     def _scoped_query(self, scope: InvoiceScope) -> Query:
          query = self.db.query(Invoice)
          if scope.unrestricted:
               return query

          query = query.outerjoin(Property, Invoice.property_id == Property.id)
          if scope.company_id is not None:
               query = query.filter(
                    or_(
                         Property.company_id == scope.company_id,
                         and_(Invoice.property_id.is_(None), Invoice.company_id == scope.company_id),
                    )
               )
          if scope.owner_id is not None or scope.issuer_id is not None:
               query = query.filter(
                    or_(Property.owner_id == scope.owner_id, Invoice.issued_by == scope.issuer_id)
               )
          if scope.property_ids:
               query = query.filter(Invoice.property_id.in_(scope.property_ids))
          if scope.recipient_id is not None:
               query = query.filter(Invoice.issued_to == scope.recipient_id)
          return query

     # ------------------------------------------------------------------
     # Writes
     # ------------------------------------------------------------------

     def insert_with_line_items(self, invoice: Invoice, line_items: List[InvoiceLineItem]) -> Invoice:
          """
          Persist the invoice and its line items as one unit.

          Raises IdentifierCollision when the invoice number is already taken;
          the session is rolled back so nothing of this invoice remains.
          """
          invoice.line_items = line_items
          self.db.add(invoice)
          try:
               self.db.flush()
          except IntegrityError:
               self.db.rollback()
               if self.number_taken(invoice.company_id, invoice.invoice_number):
                    raise IdentifierCollision(invoice.invoice_number)
               raise
          self.db.commit()
          return invoice

     def transition(
          self,
          invoice: Invoice,
          from_statuses: Iterable[InvoiceStatus],
          to_status: InvoiceStatus,
          **values,
     ) -> bool:
          """
          Move `invoice` to `to_status` only if it is still in `from_statuses`.

          Returns False when another writer got there first.
          """
          changes = {"status": to_status, "updated_at": func.now(), **values}
          updated = (
               self.db.query(Invoice)
               .filter(Invoice.id == invoice.id, Invoice.status.in_(list(from_statuses)))
               .update(changes, synchronize_session=False)
          )
          self.db.commit()
          self.db.refresh(invoice)
          return updated == 1

     def set_verification_token(self, invoice: Invoice, token: str) -> bool:
          updated = (
               self.db.query(Invoice)
               .filter(Invoice.id == invoice.id, Invoice.verification_token.is_(None))
               .update({"verification_token": token}, synchronize_session=False)
          )
          self.db.commit()
          self.db.refresh(invoice)
          return updated == 1

     def delete(self, invoice: Invoice) -> None:
          self.db.delete(invoice)
          self.db.commit()
