# services/access.py
"""
Access rules for billing records.

The acting party arrives as already-authenticated identity claims. Two
questions are answered here:

- visibility: may the actor see this invoice at all? Records outside the
  actor's scope are reported as NotFoundError so their existence is not leaked.
- management: may the actor change it? A visible record the actor may not
  change (a tenant acting on their own invoice) is PermissionDeniedError.

Role summary:
- super_admin: everything
- agency_admin: invoices of their company (through property ownership)
- landlord: invoices they issued, or on properties they own
- agent: invoices on properties they hold an active assignment for
- tenant: their own invoices, read-only
"""
from dataclasses import dataclass, field
from typing import Optional, Set, Tuple

from sqlalchemy.orm import Session

from errors import NotFoundError, PermissionDeniedError
from models import Invoice, Property, PropertyUnit, StaffPropertyAssignment, User, UserRole


@dataclass(frozen=True)
class Actor:
     """Identity claims of the caller."""
     user_id: int
     role: str
     company_id: Optional[int] = None
     agency_id: Optional[int] = None
     email: Optional[str] = None

     @classmethod
     def from_claims(cls, claims: dict) -> "Actor":
          return cls(
               user_id=int(claims["id"]),
               role=str(claims.get("role") or ""),
               company_id=_optional_int(claims.get("company_id")),
               agency_id=_optional_int(claims.get("agency_id")),
               email=claims.get("email"),
          )

     @property
     def is_super_admin(self) -> bool:
          return self.role == UserRole.SUPER_ADMIN.value


def _optional_int(value) -> Optional[int]:
     return int(value) if value not in (None, "") else None


# Used for gateway-driven work that has no human caller.
SYSTEM_ACTOR = Actor(user_id=0, role=UserRole.SUPER_ADMIN.value, email="system@billing")

MANAGING_ROLES = {
     UserRole.SUPER_ADMIN.value,
     UserRole.AGENCY_ADMIN.value,
     UserRole.LANDLORD.value,
     UserRole.AGENT.value,
}


@dataclass
class InvoiceScope:
     """
     Row filter for invoice queries, derived from the actor's role.

     `unrestricted` wins over everything else. `empty` means the actor
     legitimately sees nothing (e.g. an agent without assignments).
     """
     unrestricted: bool = False
     empty: bool = False
     company_id: Optional[int] = None
     owner_id: Optional[int] = None
     issuer_id: Optional[int] = None
     property_ids: Set[int] = field(default_factory=set)
     recipient_id: Optional[int] = None


class AccessResolver:
     """Answers visibility and management questions against the ownership chain."""

     def __init__(self, db: Session):
          self.db = db

     def assigned_property_ids(self, staff_id: int) -> Set[int]:
          rows = (
               self.db.query(StaffPropertyAssignment.property_id)
               .filter(
                    StaffPropertyAssignment.staff_id == staff_id,
                    StaffPropertyAssignment.status == "active",
               )
               .all()
          )
          return {row[0] for row in rows}

     def invoice_scope(self, actor: Actor) -> InvoiceScope:
          role = actor.role
          if role == UserRole.SUPER_ADMIN.value:
               return InvoiceScope(unrestricted=True)
          if role == UserRole.AGENCY_ADMIN.value:
               if actor.company_id is None:
                    return InvoiceScope(empty=True)
               return InvoiceScope(company_id=actor.company_id)
          if role == UserRole.LANDLORD.value:
               return InvoiceScope(owner_id=actor.user_id, issuer_id=actor.user_id)
          if role == UserRole.AGENT.value:
               property_ids = self.assigned_property_ids(actor.user_id)
               if not property_ids:
                    return InvoiceScope(empty=True)
               return InvoiceScope(property_ids=property_ids)
          if role == UserRole.TENANT.value:
               return InvoiceScope(recipient_id=actor.user_id)
          raise PermissionDeniedError(f"Role '{role}' may not access invoices")

     def can_view_invoice(self, actor: Actor, invoice: Invoice) -> bool:
          role = actor.role
          if role == UserRole.SUPER_ADMIN.value:
               return True
          prop = invoice.property
          if role == UserRole.AGENCY_ADMIN.value:
               if actor.company_id is None:
                    return False
               if prop is not None:
                    return prop.company_id == actor.company_id
               return invoice.company_id == actor.company_id
          if role == UserRole.LANDLORD.value:
               if invoice.issued_by == actor.user_id:
                    return True
               return prop is not None and prop.owner_id == actor.user_id
          if role == UserRole.AGENT.value:
               if invoice.property_id is None:
                    return False
               return invoice.property_id in self.assigned_property_ids(actor.user_id)
          if role == UserRole.TENANT.value:
               return invoice.issued_to == actor.user_id
          return False

     def ensure_can_manage_invoice(self, actor: Actor, invoice: Invoice) -> None:
          """Raise NotFoundError when out of scope, PermissionDeniedError when read-only."""
          if not self.can_view_invoice(actor, invoice):
               raise NotFoundError(f"Invoice with ID {invoice.id} not found")
          if actor.role not in MANAGING_ROLES:
               raise PermissionDeniedError("You do not have permission to modify this invoice")

     def has_tenant_access(self, actor: Actor, tenant: User) -> bool:
          """May the actor bill this tenant?"""
          if actor.is_super_admin:
               return True
          if actor.role == UserRole.TENANT.value:
               return tenant.id == actor.user_id
          if actor.company_id is not None and tenant.company_id == actor.company_id:
               return True
          if actor.role == UserRole.LANDLORD.value:
               if tenant.landlord_id == actor.user_id:
                    return True
               return any(
                    unit.property is not None and unit.property.owner_id == actor.user_id
                    for unit in tenant.assigned_units
               )
          return False

     def property_for(self, property_id: Optional[int]) -> Optional[Property]:
          if property_id is None:
               return None
          return self.db.get(Property, property_id)

     def user_for(self, user_id: Optional[int]) -> Optional[User]:
          if user_id is None:
               return None
          return self.db.get(User, user_id)

     def unit_for(self, unit_id: Optional[int]) -> Optional[PropertyUnit]:
          if unit_id is None:
               return None
          return self.db.get(PropertyUnit, unit_id)

     def payment_company_scope(self, actor: Actor) -> Tuple[Optional[int], Optional[int]]:
          """
          (company_id, tenant_id) row filter for payment queries.

          Staff roles see their company's payments, tenants their own.
          """
          if actor.is_super_admin:
               return None, None
          if actor.role == UserRole.TENANT.value:
               return None, actor.user_id
          if actor.role in MANAGING_ROLES:
               if actor.company_id is None:
                    raise PermissionDeniedError("A company association is required to access payments")
               return actor.company_id, None
          raise PermissionDeniedError(f"Role '{actor.role}' may not access payments")

     def can_view_payment(self, actor: Actor, payment) -> bool:
          if actor.is_super_admin:
               return True
          if actor.role == UserRole.TENANT.value:
               return payment.tenant_id == actor.user_id
          if actor.role in MANAGING_ROLES:
               return actor.company_id is not None and payment.company_id == actor.company_id
          return False
