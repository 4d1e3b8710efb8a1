# routers/payments.py
"""
Payment API routes: intake, approval, linking, reconciliation and the
PayMaya checkout flow.

The webhook is unauthenticated; it only carries a checkout id, and the
payment is recorded from what PayMaya reports for that checkout.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from config import settings
from dependencies import get_actor, get_services
from models import PaymentStatus
from schemas.payment import (
     CheckoutRequest,
     CheckoutResponse,
     GatewayWebhook,
     LinkPaymentRequest,
     LinkPaymentResponse,
     PaymentCreate,
     PaymentListResponse,
     PaymentResponse,
     ReconcileResponse,
     WebhookResponse,
)
from services import Actor, BillingServices, NewPayment, PaymentFilters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("", response_model=PaymentListResponse, summary="List payments visible to the caller")
def list_payments(
     tenant_id: Optional[int] = Query(None, gt=0),
     invoice_id: Optional[int] = Query(None, gt=0),
     payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
     unlinked: bool = Query(False, description="Only payments not linked to an invoice"),
     limit: int = Query(20, ge=1, le=100),
     offset: int = Query(0, ge=0),
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     filters = PaymentFilters(
          tenant_id=tenant_id,
          invoice_id=invoice_id,
          status=payment_status,
          unlinked_only=unlinked,
          limit=limit,
          offset=offset,
     )
     payments, total = services.payments.list_payments(filters, actor)
     return PaymentListResponse(
          payments=[PaymentResponse.model_validate(payment) for payment in payments],
          total=total,
          limit=limit,
          offset=offset,
     )


@router.post(
     "",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a payment"
)
def record_payment(
     body: PaymentCreate,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     data = NewPayment(
          tenant_id=body.tenant_id,
          amount=body.amount,
          payment_method=body.payment_method.value,
          payment_type=body.payment_type,
          status=body.status,
          payment_date=body.payment_date,
          payment_period=body.payment_period,
          currency=body.currency,
          invoice_id=body.invoice_id,
          transaction_id=body.transaction_id,
          reference_number=body.reference_number,
          notes=body.notes,
     )
     payment = services.payments.record_payment(data, actor)
     return PaymentResponse.model_validate(payment)


@router.post("/reconcile", response_model=ReconcileResponse, summary="Auto-reconcile unlinked payments")
def reconcile_payments(
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     result = services.reconciliation.auto_reconcile_payments(actor)
     return ReconcileResponse(
          examined=result.examined,
          reconciled=result.reconciled,
          invoices_paid=result.invoices_paid,
          failures=result.failures,
     )


@router.post("/checkout", response_model=CheckoutResponse, summary="Open a PayMaya checkout for an invoice")
def create_checkout(
     body: CheckoutRequest,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     checkout = services.payments.create_checkout(body.invoice_id, actor, settings.app_base_url)
     return CheckoutResponse(**checkout)


@router.post("/webhook", response_model=WebhookResponse, summary="PayMaya checkout webhook")
def paymaya_webhook(
     payload: GatewayWebhook,
     services: BillingServices = Depends(get_services),
):
     checkout_id = payload.checkout_id
     if not checkout_id:
          logger.warning("PayMaya webhook without checkout id ignored")
          return WebhookResponse(received=False)

     payment = services.payments.record_gateway_payment(checkout_id)
     if payment is None:
          return WebhookResponse(received=True)
     return WebhookResponse(received=True, payment_id=payment.id, receipt_number=payment.receipt_number)


@router.post("/{payment_id}/approve", response_model=PaymentResponse, summary="Approve a pending payment")
def approve_payment(
     payment_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     return PaymentResponse.model_validate(services.payments.approve_payment(payment_id, actor))


@router.post("/{payment_id}/link", response_model=LinkPaymentResponse, summary="Link a payment to an invoice")
def link_payment(
     payment_id: int,
     body: LinkPaymentRequest,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     result = services.reconciliation.link_payment(payment_id, body.invoice_id, actor)
     return LinkPaymentResponse(
          payment_id=result.payment.id,
          invoice_id=result.invoice.id,
          invoice_status=result.invoice.status.value,
          invoice_paid=result.invoice_paid,
     )
