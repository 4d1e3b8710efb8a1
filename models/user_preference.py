# models/user_preference.py
"""
UserPreference model - per-user settings read by billing.

Only the issuer-side settings are mapped here: the grace period used by the
overdue sweep and the defaults applied when an invoice is created.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class UserPreference(Base):
     __tablename__ = "user_preferences"

     id = Column(Integer, primary_key=True, autoincrement=True)
     user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
     grace_period = Column(Integer, nullable=True)  # days after due date
     default_currency = Column(String(3), nullable=True)
     default_rent_due_date = Column(Integer, nullable=True)  # day of month
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     user = relationship("User", back_populates="preferences")

     def __repr__(self):
          return f"<UserPreference(user_id={self.user_id}, grace_period={self.grace_period})>"
