import os

os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SCHEDULER_KEY"] = "test-scheduler-key"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from dataclasses import dataclass, field  # noqa: E402
from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from models import (  # noqa: E402
    Base,
    Payment,
    PaymentStatus,
    Property,
    PropertyUnit,
    StaffPropertyAssignment,
    User,
    UserPreference,
)
from services import Actor, NewInvoice, build_services  # noqa: E402
from services.gateway import GatewayConfirmation  # noqa: E402

TODAY = date(2026, 10, 19)


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    def notify(self, recipient, invoice, event) -> None:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.calls.append((recipient.id, invoice.invoice_number, event))


class FakeSnapshots:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    def record(self, invoice, event) -> str:
        if self.fail:
            raise RuntimeError("blob storage unavailable")
        self.calls.append((invoice.invoice_number, event))
        return f"memory://{invoice.invoice_number}/{event}"


class FakeGateway:
    def __init__(self) -> None:
        self.confirmations = {}
        self.checkouts = []

    def create_checkout(self, invoice, tenant, redirect_base) -> dict:
        self.checkouts.append((invoice.id, tenant.id, redirect_base))
        return {"checkout_id": f"chk-{invoice.id}", "redirect_url": f"https://pay.example/chk-{invoice.id}"}

    def verify(self, checkout_id) -> GatewayConfirmation:
        return self.confirmations[checkout_id]


@dataclass
class Fakes:
    notifier: FakeNotifier = field(default_factory=FakeNotifier)
    snapshots: FakeSnapshots = field(default_factory=FakeSnapshots)
    gateway: FakeGateway = field(default_factory=FakeGateway)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture()
def fakes() -> Fakes:
    return Fakes()


@pytest.fixture()
def services(db, fakes):
    return build_services(
        db,
        notifier=fakes.notifier,
        snapshots=fakes.snapshots,
        gateway=fakes.gateway,
        today=lambda: TODAY,
        backoff_ms=0,
    )


def _user(db, email, role, company_id=None, landlord_id=None, first="Test", last="User") -> User:
    user = User(
        email=email,
        first_name=first,
        last_name=last,
        role=role,
        company_id=company_id,
        landlord_id=landlord_id,
    )
    db.add(user)
    db.flush()
    return user


@pytest.fixture()
def world(db):
    """
    Company 1: landlord owning Skyline Apartments (unit A1, tenant) and
    Green Valley, an agency admin, an agent assigned to Skyline and an agent
    with no assignments. Company 2: its own landlord, property and tenant.
    """
    landlord = _user(db, "landlord@one.test", "landlord", company_id=1, first="Lydia", last="Otieno")
    admin = _user(db, "admin@one.test", "agency_admin", company_id=1)
    agent = _user(db, "agent@one.test", "agent", company_id=1)
    idle_agent = _user(db, "idle@one.test", "agent", company_id=1)
    caretaker = _user(db, "care@one.test", "caretaker", company_id=1)
    tenant = _user(db, "tenant@one.test", "tenant", company_id=1, landlord_id=landlord.id, first="Jane", last="Wanjiru")
    other_tenant = _user(db, "tenant2@one.test", "tenant", company_id=1, landlord_id=landlord.id, first="Peter", last="Kamau")

    landlord2 = _user(db, "landlord@two.test", "landlord", company_id=2)
    tenant3 = _user(db, "tenant@two.test", "tenant", company_id=2, landlord_id=landlord2.id, first="Amina", last="Hassan")

    skyline = Property(name="Skyline Apartments", owner_id=landlord.id, company_id=1)
    valley = Property(name="Green Valley", owner_id=landlord.id, company_id=1)
    harbour = Property(name="Harbour View Court", owner_id=landlord2.id, company_id=2)
    db.add_all([skyline, valley, harbour])
    db.flush()

    unit_a1 = PropertyUnit(property_id=skyline.id, tenant_id=tenant.id, unit_number="A1", rent_amount=Decimal("1000"), status="occupied")
    unit_b1 = PropertyUnit(property_id=valley.id, tenant_id=other_tenant.id, unit_number="B1", rent_amount=Decimal("800"), status="occupied")
    unit_h1 = PropertyUnit(property_id=harbour.id, tenant_id=tenant3.id, unit_number="H1", rent_amount=Decimal("900"), status="occupied")
    db.add_all([unit_a1, unit_b1, unit_h1])
    db.add(StaffPropertyAssignment(staff_id=agent.id, property_id=skyline.id, status="active"))
    db.commit()

    return SimpleNamespace(
        landlord=landlord,
        admin=admin,
        agent=agent,
        idle_agent=idle_agent,
        caretaker=caretaker,
        tenant=tenant,
        other_tenant=other_tenant,
        landlord2=landlord2,
        tenant3=tenant3,
        skyline=skyline,
        valley=valley,
        harbour=harbour,
        unit_a1=unit_a1,
        unit_b1=unit_b1,
        unit_h1=unit_h1,
    )


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=user.role, company_id=user.company_id, email=user.email)


SUPER_ADMIN = Actor(user_id=0, role="super_admin")


def set_grace_period(db, user: User, days: Optional[int], currency: Optional[str] = None) -> None:
    db.add(UserPreference(user_id=user.id, grace_period=days, default_currency=currency))
    db.commit()


def make_invoice(services, world, tenant=None, issuer=None, **overrides):
    """Create an invoice through the lifecycle manager and return it."""
    tenant = tenant or world.tenant
    issuer = issuer or world.landlord
    values = {"tenant_id": tenant.id, "rent_amount": Decimal("1200")}
    values.update(overrides)
    return services.lifecycle.create_invoice(NewInvoice(**values), actor_for(issuer)).invoice


def add_payment(
    db,
    tenant: User,
    amount,
    status: PaymentStatus = PaymentStatus.APPROVED,
    receipt_number: Optional[str] = None,
    payment_date: date = TODAY,
    invoice_id: Optional[int] = None,
) -> Payment:
    """Insert a payment row directly, as an independent intake channel would."""
    payment = Payment(
        company_id=tenant.company_id,
        tenant_id=tenant.id,
        invoice_id=invoice_id,
        amount=Decimal(str(amount)),
        currency="KES",
        payment_method="mobile_money",
        payment_type="rent",
        status=status,
        payment_date=payment_date,
        payment_period=payment_date.strftime("%B %Y"),
        receipt_number=receipt_number or f"MM-{tenant.id}-{amount}-{status.value}-{payment_date.isoformat()}",
    )
    db.add(payment)
    db.commit()
    return payment
