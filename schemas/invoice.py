# schemas/invoice.py
"""
Pydantic schemas for Invoice API request/response validation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict

from models import InvoiceStatus


class UtilityBill(BaseModel):
     """A utility charge; only bills marked included become line items."""
     utility_type: str = Field(..., min_length=1, max_length=50, description="water, electricity, garbage, ...")
     amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
     included: bool = True
     description: Optional[str] = Field(None, max_length=255)


class InvoiceItem(BaseModel):
     description: str = Field(..., min_length=1, max_length=255)
     quantity: Decimal = Field(default=Decimal("1"), gt=0, max_digits=10, decimal_places=2)
     unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class InvoiceCreate(BaseModel):
     """Schema for creating a new invoice."""
     tenant_id: int = Field(..., gt=0, description="Recipient tenant (must exist)")
     rent_amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
     utility_bills: List[UtilityBill] = Field(default_factory=list)
     items: List[InvoiceItem] = Field(default_factory=list)
     tax_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
     discount_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
     total_amount: Optional[Decimal] = Field(
          None,
          gt=0,
          max_digits=12,
          decimal_places=2,
          description="Optional; must match the itemised total when items are given",
     )
     currency: Optional[str] = Field(None, min_length=3, max_length=3)
     issue_date: Optional[date] = None
     due_date: Optional[date] = Field(None, description="Defaults to the issuer's next rent due day")
     title: Optional[str] = Field(None, max_length=255)
     description: Optional[str] = None
     invoice_type: str = Field(default="monthly_rent", max_length=50)
     property_id: Optional[int] = Field(None, gt=0)
     unit_id: Optional[int] = Field(None, gt=0)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 12,
                    "rent_amount": 1000.00,
                    "utility_bills": [
                         {"utility_type": "water", "amount": 200.00, "included": True}
                    ],
                    "due_date": "2026-11-05"
               }
          }
     )


class MarkPaidRequest(BaseModel):
     payment_method: Optional[str] = Field(None, max_length=50)
     payment_reference: Optional[str] = Field(None, max_length=255)
     paid_date: Optional[date] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "payment_method": "mobile_money",
                    "payment_reference": "QJK81HS02L"
               }
          }
     )


class LineItemResponse(BaseModel):
     id: int
     description: str
     quantity: Decimal
     unit_price: Decimal
     total_price: Decimal
     item_type: str
     utility_type: Optional[str] = None

     model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
     """Schema for invoice response."""
     id: int
     company_id: int
     invoice_number: str
     title: Optional[str] = None
     description: Optional[str] = None
     invoice_type: str
     issued_by: int
     issued_to: int
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     currency: str
     subtotal: Decimal
     tax_amount: Decimal
     discount_amount: Decimal
     total_amount: Decimal
     issue_date: date
     due_date: date
     paid_date: Optional[date] = None
     status: InvoiceStatus
     payment_method: Optional[str] = None
     payment_reference: Optional[str] = None
     verification_token: Optional[str] = None
     created_at: datetime
     updated_at: datetime
     line_items: List[LineItemResponse] = Field(default_factory=list)
     warnings: List[str] = Field(default_factory=list)

     model_config = ConfigDict(
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "id": 1,
                    "company_id": 3,
                    "invoice_number": "INV-SKY-2026-10-0001",
                    "title": "Invoice for Jane Wanjiru",
                    "invoice_type": "monthly_rent",
                    "issued_by": 4,
                    "issued_to": 12,
                    "currency": "KES",
                    "subtotal": 1200.00,
                    "tax_amount": 0.00,
                    "discount_amount": 0.00,
                    "total_amount": 1200.00,
                    "issue_date": "2026-10-19",
                    "due_date": "2026-11-05",
                    "status": "sent",
                    "created_at": "2026-10-19T10:30:00",
                    "updated_at": "2026-10-19T10:30:00"
               }
          }
     )


class InvoiceListResponse(BaseModel):
     """Schema for paginated invoice list response."""
     invoices: List[InvoiceResponse]
     total: int
     limit: int
     offset: int

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "invoices": [],
                    "total": 0,
                    "limit": 20,
                    "offset": 0
               }
          }
     )
