# routers/invoices.py
"""
Invoice API routes.

Role-based access is resolved in the services layer:
- super_admin: every invoice
- agency_admin: invoices of their company
- landlord: invoices they issued or on properties they own
- agent: invoices on properties assigned to them
- tenant: own invoices, read-only
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from dependencies import get_actor, get_services
from models import Invoice, InvoiceStatus
from schemas.invoice import (
     InvoiceCreate,
     InvoiceListResponse,
     InvoiceResponse,
     MarkPaidRequest,
)
from services import (
     Actor,
     BillingServices,
     ChargeItem,
     InvoiceFilters,
     NewInvoice,
     UtilityCharge,
)
from services.lifecycle import InvoiceResult

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _to_response(invoice: Invoice, warnings=None) -> InvoiceResponse:
     response = InvoiceResponse.model_validate(invoice)
     if warnings:
          response.warnings = list(warnings)
     return response


def _result_response(result: InvoiceResult) -> InvoiceResponse:
     return _to_response(result.invoice, result.warnings)


@router.post(
     "",
     response_model=InvoiceResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Create a new invoice"
)
def create_invoice(
     invoice_data: InvoiceCreate,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     """
     Create an invoice for a tenant. The invoice starts in status **sent**.

     - **rent_amount**: monthly rent line
     - **utility_bills**: utility lines (only `included` bills are billed)
     - **items**: extra charges
     - **total_amount**: optional; alone it becomes a single line item
     """
     data = NewInvoice(
          tenant_id=invoice_data.tenant_id,
          rent_amount=invoice_data.rent_amount,
          utility_bills=[
               UtilityCharge(
                    utility_type=bill.utility_type,
                    amount=bill.amount,
                    included=bill.included,
                    description=bill.description,
               )
               for bill in invoice_data.utility_bills
          ],
          items=[
               ChargeItem(description=item.description, unit_price=item.unit_price, quantity=item.quantity)
               for item in invoice_data.items
          ],
          tax_amount=invoice_data.tax_amount,
          discount_amount=invoice_data.discount_amount,
          total_amount=invoice_data.total_amount,
          currency=invoice_data.currency,
          issue_date=invoice_data.issue_date,
          due_date=invoice_data.due_date,
          title=invoice_data.title,
          description=invoice_data.description,
          invoice_type=invoice_data.invoice_type,
          property_id=invoice_data.property_id,
          unit_id=invoice_data.unit_id,
     )
     return _result_response(services.lifecycle.create_invoice(data, actor))


@router.get(
     "",
     response_model=InvoiceListResponse,
     summary="List invoices visible to the caller"
)
def list_invoices(
     tenant_id: Optional[int] = Query(None, gt=0),
     property_id: Optional[int] = Query(None, gt=0),
     property_ids: Optional[str] = Query(None, description="Comma-separated property IDs"),
     unit_id: Optional[int] = Query(None, gt=0),
     invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
     invoice_type: Optional[str] = Query(None),
     search: Optional[str] = Query(None, max_length=100),
     sort_by: str = Query("created_at"),
     sort_order: str = Query("desc", pattern="^(asc|desc)$"),
     limit: int = Query(20, ge=1, le=100),
     offset: int = Query(0, ge=0),
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     filters = InvoiceFilters(
          tenant_id=tenant_id,
          property_id=property_id,
          property_ids=[int(value) for value in property_ids.split(",") if value.strip().isdigit()]
          if property_ids else [],
          unit_id=unit_id,
          status=invoice_status,
          invoice_type=invoice_type,
          search_query=search,
          sort_by=sort_by,
          sort_order=sort_order,
          limit=limit,
          offset=offset,
     )
     invoices, total = services.lifecycle.list_invoices(filters, actor)
     return InvoiceListResponse(
          invoices=[_to_response(invoice) for invoice in invoices],
          total=total,
          limit=limit,
          offset=offset,
     )


@router.get(
     "/{invoice_id}",
     response_model=InvoiceResponse,
     summary="Get invoice by ID"
)
def get_invoice(
     invoice_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     return _to_response(services.lifecycle.get_invoice(invoice_id, actor))


@router.post(
     "/{invoice_id}/send",
     response_model=InvoiceResponse,
     summary="Send (or re-send) an invoice to the tenant"
)
def send_invoice(
     invoice_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     return _result_response(services.lifecycle.send_invoice(invoice_id, actor))


@router.patch(
     "/{invoice_id}/mark-paid",
     response_model=InvoiceResponse,
     summary="Mark invoice as paid"
)
def mark_invoice_paid(
     invoice_id: int,
     body: Optional[MarkPaidRequest] = None,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     body = body or MarkPaidRequest()
     result = services.lifecycle.mark_invoice_paid(
          invoice_id,
          actor,
          payment_method=body.payment_method,
          payment_reference=body.payment_reference,
          paid_date=body.paid_date,
     )
     return _result_response(result)


@router.post(
     "/{invoice_id}/cancel",
     response_model=InvoiceResponse,
     summary="Cancel an unpaid invoice"
)
def cancel_invoice(
     invoice_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     return _result_response(services.lifecycle.cancel_invoice(invoice_id, actor))


@router.post(
     "/{invoice_id}/void",
     response_model=InvoiceResponse,
     summary="Void an unpaid invoice"
)
def void_invoice(
     invoice_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     return _result_response(services.lifecycle.void_invoice(invoice_id, actor))


@router.delete(
     "/{invoice_id}",
     status_code=status.HTTP_204_NO_CONTENT,
     summary="Delete an unpaid invoice"
)
def delete_invoice(
     invoice_id: int,
     services: BillingServices = Depends(get_services),
     actor: Actor = Depends(get_actor),
):
     services.lifecycle.delete_invoice(invoice_id, actor)
     return Response(status_code=status.HTTP_204_NO_CONTENT)
