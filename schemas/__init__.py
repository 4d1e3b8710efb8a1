# schemas/__init__.py
from .invoice import (
     UtilityBill,
     InvoiceItem,
     InvoiceCreate,
     MarkPaidRequest,
     LineItemResponse,
     InvoiceResponse,
     InvoiceListResponse,
)
from .payment import (
     PaymentCreate,
     PaymentResponse,
     PaymentListResponse,
     LinkPaymentRequest,
     LinkPaymentResponse,
     ReconcileResponse,
     CheckoutRequest,
     CheckoutResponse,
     GatewayWebhook,
     WebhookResponse,
)
from .scheduler import OverdueSweepRequest, OverdueSweepResponse

__all__ = [
     "UtilityBill",
     "InvoiceItem",
     "InvoiceCreate",
     "MarkPaidRequest",
     "LineItemResponse",
     "InvoiceResponse",
     "InvoiceListResponse",
     "PaymentCreate",
     "PaymentResponse",
     "PaymentListResponse",
     "LinkPaymentRequest",
     "LinkPaymentResponse",
     "ReconcileResponse",
     "CheckoutRequest",
     "CheckoutResponse",
     "GatewayWebhook",
     "WebhookResponse",
     "OverdueSweepRequest",
     "OverdueSweepResponse",
]
