# services/gateway.py
"""
PayMaya checkout integration.

`create_checkout` opens a hosted checkout for an invoice; `verify` asks
PayMaya for the authoritative state of a checkout before a payment is
recorded. Webhook payloads are never trusted on their own.
"""
import base64
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import requests

from config import settings
from errors import GatewayError
from models import Invoice, User

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"PAYMENT_SUCCESS", "COMPLETED"}


@dataclass(frozen=True)
class GatewayConfirmation:
     reference: str
     amount: Decimal
     currency: str
     status: str
     metadata: dict = field(default_factory=dict)

     @property
     def succeeded(self) -> bool:
          return self.status in SUCCESS_STATUSES


class PayMayaGateway:
     def __init__(
          self,
          public_key: Optional[str] = None,
          secret_key: Optional[str] = None,
          base_url: Optional[str] = None,
          timeout: Optional[int] = None,
     ):
          self.public_key = public_key or settings.paymaya_public_key
          self.secret_key = secret_key or settings.paymaya_secret_key
          self.base_url = (base_url or settings.paymaya_base_url).rstrip("/")
          self.timeout = timeout or settings.http_timeout_seconds

     def _headers(self, key: Optional[str]) -> dict:
          if not key:
               raise GatewayError("PayMaya keys are not configured")
          auth = base64.b64encode(f"{key}:".encode()).decode()
          return {
               "Content-Type": "application/json",
               "Authorization": f"Basic {auth}",
          }

     def create_checkout(self, invoice: Invoice, tenant: User, redirect_base: str) -> dict:
          payload = {
               "totalAmount": {
                    "value": float(invoice.total_amount),
                    "currency": invoice.currency,
               },
               "buyer": {
                    "firstName": tenant.first_name,
                    "lastName": tenant.last_name,
                    "contact": {"email": tenant.email},
               },
               "requestReferenceNumber": invoice.invoice_number,
               "metadata": {
                    "invoice_id": invoice.id,
                    "tenant_id": invoice.issued_to,
                    "company_id": invoice.company_id,
               },
               "redirectUrl": {
                    "success": f"{redirect_base}/payment-success",
                    "failure": f"{redirect_base}/payment-failure",
                    "cancel": f"{redirect_base}/payment-cancel",
               },
          }
          try:
               response = requests.post(
                    f"{self.base_url}/checkout/v1/checkouts",
                    json=payload,
                    headers=self._headers(self.public_key),
                    timeout=self.timeout,
               )
          except requests.RequestException as exc:
               raise GatewayError(f"PayMaya checkout failed: {exc}") from exc
          if response.status_code not in (200, 201):
               raise GatewayError(f"PayMaya checkout failed: {response.text}")

          data = response.json()
          return {
               "checkout_id": data["checkoutId"],
               "redirect_url": data["redirectUrl"],
          }

     def verify(self, checkout_id: str) -> GatewayConfirmation:
          try:
               response = requests.get(
                    f"{self.base_url}/checkout/v1/checkouts/{checkout_id}",
                    headers=self._headers(self.secret_key),
                    timeout=self.timeout,
               )
          except requests.RequestException as exc:
               raise GatewayError(f"PayMaya verification failed: {exc}") from exc
          if response.status_code != 200:
               raise GatewayError(f"PayMaya verification failed: {response.text}")

          data = response.json()
          total = data.get("totalAmount") or {}
          confirmation = GatewayConfirmation(
               reference=data.get("id") or checkout_id,
               amount=Decimal(str(total.get("value", "0"))),
               currency=total.get("currency", settings.default_currency),
               status=data.get("paymentStatus") or data.get("status") or "UNKNOWN",
               metadata=data.get("metadata") or {},
          )
          logger.info("PayMaya checkout %s verified with status %s", checkout_id, confirmation.status)
          return confirmation
