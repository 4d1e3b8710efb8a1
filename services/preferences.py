# services/preferences.py
from dataclasses import dataclass

from sqlalchemy.orm import Session

from config import settings
from models import UserPreference


@dataclass(frozen=True)
class BillingPreferences:
     grace_period: int
     default_currency: str
     default_rent_due_day: int


class PreferenceReader:
     """Read-only view of an issuer's billing settings, with configured defaults."""

     def __init__(
          self,
          db: Session,
          default_currency: str = settings.default_currency,
          default_rent_due_day: int = settings.default_rent_due_day,
     ):
          self.db = db
          self.default_currency = default_currency
          self.default_rent_due_day = default_rent_due_day

     def for_user(self, user_id: int) -> BillingPreferences:
          row = self.db.query(UserPreference).filter(UserPreference.user_id == user_id).first()
          if row is None:
               return BillingPreferences(0, self.default_currency, self.default_rent_due_day)
          return BillingPreferences(
               grace_period=max(row.grace_period or 0, 0),
               default_currency=row.default_currency or self.default_currency,
               default_rent_due_day=row.default_rent_due_date or self.default_rent_due_day,
          )

     def grace_period(self, user_id: int) -> int:
          return self.for_user(user_id).grace_period
