# models/staff_assignment.py
"""
StaffPropertyAssignment model - which agents work on which properties.
Used for role-based access: an agent only sees invoices on properties
they hold an active assignment for.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


class StaffPropertyAssignment(Base):
     __tablename__ = "staff_property_assignments"
     __table_args__ = (
          UniqueConstraint("staff_id", "property_id", name="uq_staff_property_assignment"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     staff_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
     property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
     status = Column(String(20), default="active", nullable=False)  # active, inactive
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     property = relationship("Property", back_populates="staff_assignments")

     def __repr__(self):
          return f"<StaffPropertyAssignment(staff_id={self.staff_id}, property_id={self.property_id}, status='{self.status}')>"
