# routers/scheduler.py
"""
Batch-job triggers for an external cron. Authorised by the X-Scheduler-Key
header; both jobs are safe to run repeatedly.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from dependencies import get_services, verify_scheduler_key
from schemas.payment import ReconcileResponse
from schemas.scheduler import OverdueSweepRequest, OverdueSweepResponse
from services import SYSTEM_ACTOR, BillingServices

router = APIRouter(
     prefix="/api/scheduler",
     tags=["scheduler"],
     dependencies=[Depends(verify_scheduler_key)],
)


@router.post("/overdue-sweep", response_model=OverdueSweepResponse)
def run_overdue_sweep(
     body: Optional[OverdueSweepRequest] = None,
     services: BillingServices = Depends(get_services),
):
     body = body or OverdueSweepRequest()
     as_of = body.as_of or services.overdue.today()
     result = services.overdue.run(today=as_of, company_id=body.company_id)
     return OverdueSweepResponse(
          as_of=as_of,
          examined=result.examined,
          updated=result.updated,
          failed=result.failed,
     )


@router.post("/auto-reconcile", response_model=ReconcileResponse)
def run_auto_reconcile(services: BillingServices = Depends(get_services)):
     result = services.reconciliation.auto_reconcile_payments(SYSTEM_ACTOR)
     return ReconcileResponse(
          examined=result.examined,
          reconciled=result.reconciled,
          invoices_paid=result.invoices_paid,
          failures=result.failures,
     )
