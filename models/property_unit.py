from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class PropertyUnit(Base):
     """
     PropertyUnit model - individual units within a property.
     Maps to existing 'units' table in the database.
     """
     __tablename__ = "units"

     id = Column(Integer, primary_key=True, autoincrement=True)
     property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
     tenant_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

     unit_number = Column(String(50), nullable=False)
     rent_amount = Column(Numeric(12, 2), nullable=True)
     status = Column(String(50), default="vacant", nullable=False)  # vacant, occupied

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     # Relationships
     property = relationship("Property", back_populates="units")
     tenant = relationship("User", back_populates="assigned_units", foreign_keys=[tenant_id])

     def __repr__(self):
          return f"<PropertyUnit(id={self.id}, unit_number='{self.unit_number}', status='{self.status}')>"
