# services/verification.py
import secrets

from models import Invoice
from services.invoice_store import InvoiceStore


class VerificationTokenIssuer:
     """Stamps a public verification token on an invoice, once."""

     def __init__(self, store: InvoiceStore):
          self.store = store

     def ensure_token(self, invoice: Invoice) -> str:
          if invoice.verification_token:
               return invoice.verification_token
          self.store.set_verification_token(invoice, secrets.token_urlsafe(24))
          return invoice.verification_token
