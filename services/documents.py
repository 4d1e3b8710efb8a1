# services/documents.py
"""
Document snapshots - immutable JSON renderings of an invoice at a point in
its lifecycle, stored in Azure Blob Storage.

Each event gets its own blob and existing blobs are never overwritten, so the
container holds the full revision history of every invoice.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from azure.storage.blob import BlobServiceClient

from config import settings
from models import Invoice

logger = logging.getLogger(__name__)


def render_invoice(invoice: Invoice) -> dict:
     """Stable, JSON-serialisable rendering of an invoice and its line items."""
     return {
          "id": invoice.id,
          "invoice_number": invoice.invoice_number,
          "company_id": invoice.company_id,
          "issued_by": invoice.issued_by,
          "issued_to": invoice.issued_to,
          "property_id": invoice.property_id,
          "unit_id": invoice.unit_id,
          "title": invoice.title,
          "description": invoice.description,
          "invoice_type": invoice.invoice_type,
          "currency": invoice.currency,
          "subtotal": str(invoice.subtotal),
          "tax_amount": str(invoice.tax_amount),
          "discount_amount": str(invoice.discount_amount),
          "total_amount": str(invoice.total_amount),
          "issue_date": invoice.issue_date.isoformat(),
          "due_date": invoice.due_date.isoformat(),
          "paid_date": invoice.paid_date.isoformat() if invoice.paid_date else None,
          "status": invoice.status.value,
          "payment_method": invoice.payment_method,
          "payment_reference": invoice.payment_reference,
          "line_items": [
               {
                    "description": item.description,
                    "quantity": str(item.quantity),
                    "unit_price": str(item.unit_price),
                    "total_price": str(item.total_price),
                    "type": item.item_type,
               }
               for item in invoice.line_items
          ],
     }


class SnapshotRecorder:
     def __init__(
          self,
          account: Optional[str] = None,
          key: Optional[str] = None,
          container: Optional[str] = None,
     ):
          self.account = account or settings.azure_storage_account
          self.key = key or settings.azure_storage_key
          self.container = container or settings.snapshot_container
          self._client: Optional[BlobServiceClient] = None

     def _blob_service(self) -> BlobServiceClient:
          if self._client is None:
               if not self.account or not self.key:
                    raise RuntimeError("Azure storage credentials are not configured")
               self._client = BlobServiceClient.from_connection_string(
                    f"DefaultEndpointsProtocol=https;"
                    f"AccountName={self.account};"
                    f"AccountKey={self.key};"
                    f"EndpointSuffix=core.windows.net"
               )
          return self._client

     def record(self, invoice: Invoice, event: str) -> str:
          """Upload a snapshot for `event` and return its blob URL."""
          stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
          blob_name = f"invoices/{invoice.company_id}/{invoice.invoice_number}/{stamp}-{event}.json"
          payload = json.dumps({"event": event, "invoice": render_invoice(invoice)}, sort_keys=True)

          blob_client = self._blob_service().get_blob_client(container=self.container, blob=blob_name)
          blob_client.upload_blob(payload.encode("utf-8"), overwrite=False)
          logger.info("Recorded %s snapshot for invoice %s", event, invoice.invoice_number)
          return f"https://{self.account}.blob.core.windows.net/{self.container}/{blob_name}"
