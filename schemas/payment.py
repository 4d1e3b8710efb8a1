# schemas/payment.py
"""
Pydantic schemas for payment intake, linking and reconciliation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from models import PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
     """Manual payment entry."""
     tenant_id: int = Field(..., gt=0)
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
     payment_method: PaymentMethod = PaymentMethod.CASH
     payment_type: str = Field(default="rent", max_length=30)
     status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="pending, approved or completed")
     payment_date: Optional[date] = None
     payment_period: Optional[str] = Field(None, max_length=50)
     currency: Optional[str] = Field(None, min_length=3, max_length=3)
     invoice_id: Optional[int] = Field(None, gt=0, description="Link to this invoice straight away")
     transaction_id: Optional[str] = Field(None, max_length=255)
     reference_number: Optional[str] = Field(None, max_length=255)
     notes: Optional[str] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 12,
                    "amount": 1200.00,
                    "payment_method": "mobile_money",
                    "status": "approved",
                    "reference_number": "QJK81HS02L"
               }
          }
     )


class PaymentResponse(BaseModel):
     id: int
     company_id: int
     tenant_id: int
     invoice_id: Optional[int] = None
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     amount: Decimal
     currency: str
     payment_method: str
     payment_type: str
     status: PaymentStatus
     payment_date: date
     payment_period: Optional[str] = None
     receipt_number: str
     transaction_id: Optional[str] = None
     reference_number: Optional[str] = None
     received_from: Optional[str] = None
     notes: Optional[str] = None
     processed_at: Optional[datetime] = None
     created_at: datetime

     model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
     payments: List[PaymentResponse]
     total: int
     limit: int
     offset: int


class LinkPaymentRequest(BaseModel):
     invoice_id: int = Field(..., gt=0, description="Invoice the payment settles")


class LinkPaymentResponse(BaseModel):
     payment_id: int
     invoice_id: int
     invoice_status: str
     invoice_paid: bool


class ReconcileResponse(BaseModel):
     examined: int
     reconciled: int
     invoices_paid: int
     failures: List[str] = Field(default_factory=list)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {"examined": 3, "reconciled": 1, "invoices_paid": 1, "failures": []}
          }
     )


class CheckoutRequest(BaseModel):
     invoice_id: int = Field(..., gt=0, description="Invoice to create checkout for")


class CheckoutResponse(BaseModel):
     checkout_id: str
     redirect_url: str


class GatewayWebhook(BaseModel):
     """
     PayMaya checkout webhook. Only the checkout id is used; the payment
     itself is read back from the gateway.
     """
     id: Optional[str] = None
     checkoutId: Optional[str] = None
     paymentStatus: Optional[str] = None
     requestReferenceNumber: Optional[str] = None

     model_config = ConfigDict(extra="allow")

     @property
     def checkout_id(self) -> Optional[str]:
          return self.checkoutId or self.id


class WebhookResponse(BaseModel):
     received: bool = True
     payment_id: Optional[int] = None
     receipt_number: Optional[str] = None
