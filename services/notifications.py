# services/notifications.py
"""
Invoice notifications to tenants, delivered as Brevo transactional email.

Callers wrap `notify` in services.side_effects.fire_and_forget; any failure
here (missing key, HTTP error, timeout) is raised and logged there.
"""
import logging

import requests

from config import settings
from models import Invoice, User

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"

_SUBJECTS = {
     "created": "New invoice {number}",
     "sent": "Invoice {number} from your landlord",
     "paid": "Payment received for invoice {number}",
}


class NotificationDispatcher:
     def __init__(self, api_key: str | None = None, timeout: int | None = None):
          self.api_key = api_key if api_key is not None else settings.brevo_api_key
          self.timeout = timeout or settings.http_timeout_seconds

     def notify(self, recipient: User, invoice: Invoice, event: str) -> None:
          if not self.api_key:
               raise RuntimeError("BREVO_API_KEY is not set")
          if not recipient.email:
               raise ValueError(f"Recipient {recipient.id} has no email address")

          subject = _SUBJECTS.get(event, "Invoice {number}").format(number=invoice.invoice_number)
          response = requests.post(
               BREVO_URL,
               headers={
                    "api-key": self.api_key,
                    "Content-Type": "application/json",
               },
               json={
                    "sender": {"name": settings.mail_sender_name, "email": settings.mail_sender_email},
                    "to": [{"email": recipient.email, "name": recipient.full_name}],
                    "subject": subject,
                    "htmlContent": f"""
                         <h2>{subject}</h2>
                         <p>Amount: {invoice.currency} {invoice.total_amount:,.2f}</p>
                         <p>Due date: {invoice.due_date.isoformat()}</p>
                         <p>Status: {invoice.status.value}</p>
                    """,
               },
               timeout=self.timeout,
          )
          if response.status_code not in (200, 201, 202):
               raise RuntimeError(f"Brevo error: {response.text}")
          logger.info("Invoice %s %s notification sent to %s", invoice.invoice_number, event, recipient.email)
