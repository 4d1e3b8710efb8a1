import enum
from sqlalchemy import (
     Column, Integer, String, Text, Numeric, Date, DateTime, ForeignKey, Enum, JSON,
     UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class InvoiceStatus(str, enum.Enum):
     """Lifecycle states of an invoice. DRAFT is only accepted from legacy rows."""
     DRAFT = "draft"
     SENT = "sent"
     OVERDUE = "overdue"
     PAID = "paid"
     CANCELLED = "cancelled"
     VOID = "void"


def _enum_values(enum_cls):
     return [member.value for member in enum_cls]


class Invoice(TimestampMixin, Base):
     """
     Invoice model - a billing obligation from an issuer to a tenant.

     Created already active (status SENT) together with its line items.
     Status only changes through services.lifecycle; the invoice number is
     assigned once at creation and never rewritten.
     """
     __tablename__ = "invoices"
     __table_args__ = (
          UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False, index=True)
     invoice_number = Column(String(50), nullable=False, index=True)

     title = Column(String(255), nullable=True)
     description = Column(Text, nullable=True)
     invoice_type = Column(String(50), default="monthly_rent", nullable=False)

     # Parties
     issued_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
     issued_to = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
     property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
     unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)

     # Amounts
     currency = Column(String(3), nullable=False)
     subtotal = Column(Numeric(12, 2), nullable=False)
     tax_amount = Column(Numeric(12, 2), default=0, nullable=False)
     discount_amount = Column(Numeric(12, 2), default=0, nullable=False)
     total_amount = Column(Numeric(12, 2), nullable=False)

     # Dates
     issue_date = Column(Date, nullable=False)
     due_date = Column(Date, nullable=False, index=True)
     paid_date = Column(Date, nullable=True)

     status = Column(
          Enum(
               InvoiceStatus,
               name="invoice_status",
               values_callable=_enum_values,
               create_constraint=True,
          ),
          default=InvoiceStatus.SENT,
          nullable=False,
          index=True
     )
     payment_method = Column(String(50), nullable=True)
     payment_reference = Column(String(255), nullable=True)
     verification_token = Column(String(64), nullable=True, unique=True)
     invoice_metadata = Column("metadata", JSON, nullable=True)  # rent amount, utility bills, creation channel

     @property
     def is_open(self) -> bool:
          """Invoice still expects money (sent or overdue)."""
          return self.status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)

     # Relationships; `property` shadows the builtin below this line
     issuer = relationship("User", foreign_keys=[issued_by])
     recipient = relationship("User", foreign_keys=[issued_to])
     property = relationship("Property")
     unit = relationship("PropertyUnit")
     line_items = relationship(
          "InvoiceLineItem",
          back_populates="invoice",
          cascade="all, delete-orphan",
          order_by="InvoiceLineItem.position",
     )
     payments = relationship("Payment", back_populates="invoice")

     def __repr__(self):
          return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status.value}', due_date={self.due_date})>"


class InvoiceLineItem(Base):
     """
     One itemised charge. Owned by its invoice; written in the same
     transaction and never updated on its own.
     """
     __tablename__ = "invoice_line_items"

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(
          Integer,
          ForeignKey("invoices.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     position = Column(Integer, default=0, nullable=False)
     description = Column(String(255), nullable=False)
     quantity = Column(Numeric(10, 2), default=1, nullable=False)
     unit_price = Column(Numeric(12, 2), nullable=False)
     total_price = Column(Numeric(12, 2), nullable=False)
     item_type = Column(String(30), nullable=False)  # rent, utility, item, tax, discount
     utility_type = Column(String(50), nullable=True)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     invoice = relationship("Invoice", back_populates="line_items")

     def __repr__(self):
          return f"<InvoiceLineItem(id={self.id}, type='{self.item_type}', total={self.total_price})>"
