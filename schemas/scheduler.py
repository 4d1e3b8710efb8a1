# schemas/scheduler.py
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class OverdueSweepRequest(BaseModel):
     as_of: Optional[date] = Field(None, description="Evaluate as of this day instead of today")
     company_id: Optional[int] = Field(None, gt=0)


class OverdueSweepResponse(BaseModel):
     as_of: date
     examined: int
     updated: int
     failed: int
