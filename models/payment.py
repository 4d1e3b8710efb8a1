# models/payment.py
"""
Payment model - one row per money movement, pending or settled.

Payments are never deleted. A payment is linked to at most one invoice;
`invoice_id` is written by the reconciliation engine (or at creation for the
shadow payment that accompanies a new invoice).
"""
import enum
from sqlalchemy import (
     Column, Integer, String, Text, Numeric, Date, DateTime, ForeignKey, Enum, Index,
     UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin
from .invoice import _enum_values


class PaymentStatus(str, enum.Enum):
     PENDING = "pending"
     APPROVED = "approved"
     COMPLETED = "completed"
     FAILED = "failed"


# Statuses whose amounts count towards settling an invoice.
SETTLED_STATUSES = (PaymentStatus.APPROVED, PaymentStatus.COMPLETED)


class PaymentMethod(str, enum.Enum):
     CASH = "cash"
     MOBILE_MONEY = "mobile_money"
     BANK_TRANSFER = "bank_transfer"
     ONLINE = "online"
     CHEQUE = "cheque"


class Payment(TimestampMixin, Base):
     __tablename__ = "payments"
     __table_args__ = (
          UniqueConstraint("company_id", "receipt_number", name="uq_payments_company_receipt"),
          Index(
               "uq_payments_transaction_id",
               "transaction_id",
               unique=True,
               mssql_where=text("transaction_id IS NOT NULL"),
               sqlite_where=text("transaction_id IS NOT NULL"),
               postgresql_where=text("transaction_id IS NOT NULL"),
          ),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False, index=True)
     tenant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
     property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)
     unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
     invoice_id = Column(
          Integer,
          ForeignKey("invoices.id", ondelete="SET NULL"),
          nullable=True,
          index=True
     )

     amount = Column(Numeric(12, 2), nullable=False)
     currency = Column(String(3), nullable=False)
     payment_method = Column(String(30), nullable=False)
     payment_type = Column(String(30), default="rent", nullable=False)  # rent, other
     status = Column(
          Enum(
               PaymentStatus,
               name="payment_status",
               values_callable=_enum_values,
               create_constraint=True,
          ),
          default=PaymentStatus.PENDING,
          nullable=False,
          index=True
     )

     payment_date = Column(Date, nullable=False)
     payment_period = Column(String(50), nullable=True)  # e.g. "October 2026"
     receipt_number = Column(String(100), nullable=False)
     transaction_id = Column(String(255), nullable=True)  # gateway transaction id
     reference_number = Column(String(255), nullable=True)
     received_from = Column(String(255), nullable=True)
     notes = Column(Text, nullable=True)

     created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
     processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
     processed_at = Column(DateTime, nullable=True)

     # Relationships
     tenant = relationship("User", foreign_keys=[tenant_id])
     invoice = relationship("Invoice", back_populates="payments")

     @property
     def is_settled(self) -> bool:
          return self.status in SETTLED_STATUSES

     def __repr__(self):
          return f"<Payment(id={self.id}, receipt='{self.receipt_number}', amount={self.amount}, status='{self.status.value}')>"
