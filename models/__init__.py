# models/__init__.py
from .base import Base
from .user import User, UserRole
from .user_preference import UserPreference
from .property import Property
from .property_unit import PropertyUnit
from .staff_assignment import StaffPropertyAssignment
from .invoice import Invoice, InvoiceLineItem, InvoiceStatus
from .payment import Payment, PaymentMethod, PaymentStatus, SETTLED_STATUSES

__all__ = [
     "Base",
     "User",
     "UserRole",
     "UserPreference",
     "Property",
     "PropertyUnit",
     "StaffPropertyAssignment",
     "Invoice",
     "InvoiceLineItem",
     "InvoiceStatus",
     "Payment",
     "PaymentMethod",
     "PaymentStatus",
     "SETTLED_STATUSES",
]
