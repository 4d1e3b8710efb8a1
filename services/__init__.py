# services/__init__.py
"""
Service wiring.

`build_services` assembles the billing services around one database
session. Collaborators default to the configured integrations; tests and
batch jobs pass their own.
"""
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import settings
from .access import AccessResolver, Actor, SYSTEM_ACTOR
from .documents import SnapshotRecorder
from .gateway import PayMayaGateway
from .invoice_store import InvoiceFilters, InvoiceStore
from .lifecycle import InvoiceLifecycleManager, NewInvoice, ChargeItem, UtilityCharge
from .notifications import NotificationDispatcher
from .overdue import OverdueSweep
from .payment_store import PaymentFilters, PaymentStore
from .payments import NewPayment, PaymentService
from .preferences import PreferenceReader
from .reconciliation import ReconciliationEngine
from .sequence import INVOICE_NUMBERS, RECEIPT_NUMBERS, SequenceAllocator
from .verification import VerificationTokenIssuer


@dataclass
class BillingServices:
     lifecycle: InvoiceLifecycleManager
     reconciliation: ReconciliationEngine
     payments: PaymentService
     overdue: OverdueSweep


def build_services(
     db: Session,
     notifier=None,
     snapshots=None,
     gateway=None,
     today: Callable[[], date] = date.today,
     max_attempts: Optional[int] = None,
     backoff_ms: Optional[int] = None,
) -> BillingServices:
     max_attempts = max_attempts or settings.invoice_number_max_attempts
     backoff_ms = settings.invoice_number_backoff_ms if backoff_ms is None else backoff_ms

     payment_store = PaymentStore(db)
     invoice_store = InvoiceStore(db, payment_store)
     access = AccessResolver(db)
     preferences = PreferenceReader(db)

     lifecycle = InvoiceLifecycleManager(
          invoices=invoice_store,
          payments=payment_store,
          access=access,
          preferences=preferences,
          allocator=SequenceAllocator(
               invoice_store.last_sequence, INVOICE_NUMBERS, max_attempts, backoff_ms
          ),
          verification=VerificationTokenIssuer(invoice_store),
          notifier=notifier or NotificationDispatcher(),
          snapshots=snapshots or SnapshotRecorder(),
          today=today,
     )
     reconciliation = ReconciliationEngine(invoice_store, payment_store, access, lifecycle)
     payments = PaymentService(
          invoices=invoice_store,
          payments=payment_store,
          access=access,
          allocator=SequenceAllocator(
               payment_store.last_receipt_sequence, RECEIPT_NUMBERS, max_attempts, backoff_ms
          ),
          reconciliation=reconciliation,
          gateway=gateway or PayMayaGateway(),
          default_currency=settings.default_currency,
          today=today,
     )
     overdue = OverdueSweep(invoice_store, preferences, lifecycle, today=today)
     return BillingServices(lifecycle, reconciliation, payments, overdue)


__all__ = [
     "Actor",
     "SYSTEM_ACTOR",
     "BillingServices",
     "build_services",
     "ChargeItem",
     "InvoiceFilters",
     "NewInvoice",
     "NewPayment",
     "PaymentFilters",
     "UtilityCharge",
]
