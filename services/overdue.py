# services/overdue.py
"""
Overdue Sweep - escalate SENT invoices whose grace deadline has passed.

deadline = due_date + issuer grace period (days). An invoice becomes
OVERDUE when deadline < today, so it stays SENT through the last day of
grace. Each invoice gets its own conditional write from SENT; running the
sweep again the same day finds nothing left to change.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import InvoiceStatus
from services.invoice_store import InvoiceStore
from services.lifecycle import InvoiceLifecycleManager
from services.preferences import PreferenceReader

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
     examined: int = 0
     updated: int = 0
     failed: int = 0


class OverdueSweep:
     def __init__(
          self,
          invoices: InvoiceStore,
          preferences: PreferenceReader,
          lifecycle: InvoiceLifecycleManager,
          today: Callable[[], date] = date.today,
     ):
          self.invoices = invoices
          self.preferences = preferences
          self.lifecycle = lifecycle
          self.today = today

     def run(self, today: Optional[date] = None, company_id: Optional[int] = None) -> SweepResult:
          today = today or self.today()
          result = SweepResult()
          grace_by_issuer: Dict[int, int] = {}

          for invoice in self.invoices.list_by_status([InvoiceStatus.SENT], company_id):
               result.examined += 1
               if invoice.issued_by not in grace_by_issuer:
                    grace_by_issuer[invoice.issued_by] = self.preferences.grace_period(invoice.issued_by)
               deadline = invoice.due_date + timedelta(days=grace_by_issuer[invoice.issued_by])
               if deadline >= today:
                    continue
               try:
                    if self.lifecycle.mark_overdue(invoice):
                         result.updated += 1
                         logger.info("Invoice %s is overdue (deadline %s)", invoice.invoice_number, deadline)
               except SQLAlchemyError as exc:
                    self.invoices.db.rollback()
                    result.failed += 1
                    logger.warning("Overdue sweep failed for invoice %s: %s", invoice.id, exc)

          logger.info(
               "Overdue sweep for %s: %d examined, %d marked overdue, %d failed",
               today, result.examined, result.updated, result.failed,
          )
          return result
