from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class Property(Base):
     """
     Property model - a building or estate managed by a company.
     Maps to existing 'properties' table in the database.

     The ownership chain used for access checks is
     company_id (agency staff) -> owner_id (landlord) -> staff assignments (agents).
     """
     __tablename__ = "properties"

     id = Column(Integer, primary_key=True, autoincrement=True)
     name = Column(String(255), nullable=False)
     owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
     company_id = Column(Integer, nullable=True, index=True)
     agency_id = Column(Integer, nullable=True, index=True)

     # Address
     street = Column(String(255), nullable=True)
     city = Column(String(100), nullable=True)
     region = Column(String(100), nullable=True)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, onupdate=func.now(), nullable=True)

     # Relationships
     owner = relationship("User", foreign_keys=[owner_id])
     units = relationship("PropertyUnit", back_populates="property", cascade="all, delete-orphan")
     staff_assignments = relationship("StaffPropertyAssignment", back_populates="property")

     def __repr__(self):
          return f"<Property(id={self.id}, name='{self.name}')>"
