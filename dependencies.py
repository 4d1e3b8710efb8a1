# dependencies.py
"""
Shared FastAPI dependencies: bearer-token claims, the acting party and
the billing services bound to the request's session.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config import settings
from database import get_session
from services import Actor, BillingServices, build_services


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
     except JWTError:
          raise HTTPException(status_code=403, detail="Invalid token")
     if "id" not in payload:
          raise HTTPException(status_code=403, detail="Invalid token")
     return payload


def get_actor(token: dict = Depends(verify_token)) -> Actor:
     return Actor.from_claims(token)


def get_services(db: Session = Depends(get_session)) -> BillingServices:
     return build_services(db)


def verify_scheduler_key(x_scheduler_key: Optional[str] = Header(None)) -> None:
     """Batch-job endpoints are called by cron with a shared key, not a user token."""
     if not settings.scheduler_key or x_scheduler_key != settings.scheduler_key:
          raise HTTPException(status_code=401, detail="Invalid scheduler key")
