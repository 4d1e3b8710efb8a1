# models/user.py
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class UserRole(str, enum.Enum):
     """Roles carried in identity claims."""
     SUPER_ADMIN = "super_admin"
     AGENCY_ADMIN = "agency_admin"
     LANDLORD = "landlord"
     AGENT = "agent"
     CARETAKER = "caretaker"
     TENANT = "tenant"


class User(Base):
     """
     User model - central identity table shared by staff, landlords and tenants.
     Maps to the existing 'users' table; only the columns billing reads are mapped.
     """
     __tablename__ = "users"

     id = Column(Integer, primary_key=True, autoincrement=True)
     email = Column(String(255), unique=True, nullable=False, index=True)
     first_name = Column(String(100), nullable=False)
     last_name = Column(String(100), nullable=False)
     phone_number = Column(String(50), nullable=True)
     role = Column(String(50), nullable=False, index=True)  # see UserRole
     company_id = Column(Integer, nullable=True, index=True)
     agency_id = Column(Integer, nullable=True, index=True)
     landlord_id = Column(Integer, ForeignKey("users.id"), nullable=True)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     preferences = relationship("UserPreference", back_populates="user", uselist=False)
     assigned_units = relationship(
          "PropertyUnit",
          back_populates="tenant",
          foreign_keys="PropertyUnit.tenant_id",
     )

     @property
     def full_name(self) -> str:
          return f"{self.first_name} {self.last_name}".strip()

     @property
     def is_tenant(self) -> bool:
          return self.role == UserRole.TENANT.value

     def __repr__(self):
          return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
