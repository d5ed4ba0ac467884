import os
import tempfile
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

# Settings are read at import time, so the environment must be in place first.
_tmpdir = tempfile.mkdtemp(prefix="grumming-tests-")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = f"sqlite:///{_tmpdir}/test.db"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SENDGRID_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token, hash_password
from app.db.session import Base, SessionLocal, engine
from app.main import app
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.booking import Booking, BookingStatus
from app.models.cancellation import CancellationPenalty  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.user import User
from app.models.wallet import Wallet, WalletTransaction  # noqa: F401
from app.models.webhook_log import WebhookLog  # noqa: F401
from app.services import email_service, payment_service, sms_service


class FakeRazorpay:
    """Stands in for RazorpayClient; records calls and returns canned payloads."""

    def __init__(self):
        self.calls = []
        self.order_payments = {"items": []}
        self.refund_response = {"id": "rfnd_test_1", "status": "processed"}
        self._orders = 0
        self.orders = {}

    def create_order(self, *, amount_paise, currency, receipt, notes=None):
        self._orders += 1
        self.calls.append(("create_order", {"amount_paise": amount_paise, "currency": currency,
                                            "receipt": receipt, "notes": notes}))
        order = {"id": f"order_test_{self._orders}", "amount": amount_paise, "currency": currency,
                 "status": "created", "notes": notes or {}}
        self.orders[order["id"]] = order
        return order

    def fetch_order(self, order_id):
        self.calls.append(("fetch_order", order_id))
        return self.orders[order_id]

    def fetch_order_payments(self, order_id):
        self.calls.append(("fetch_order_payments", order_id))
        return self.order_payments

    def refund_payment(self, *, payment_id, amount_paise, notes=None, speed="normal"):
        self.calls.append(("refund_payment", {"payment_id": payment_id, "amount_paise": amount_paise}))
        return self.refund_response


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email and disable SMS providers."""
    sent = []
    monkeypatch.setattr(email_service, "send_email",
                        lambda to_email, subject, body, html=None: sent.append((to_email, subject)))
    monkeypatch.setattr(sms_service, "SMS_PROVIDERS", ())
    return sent


@pytest.fixture
def razorpay(monkeypatch):
    fake = FakeRazorpay()
    monkeypatch.setattr(payment_service, "razorpay_client", lambda: fake)
    return fake


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def make_user(db, role="customer", email=None, phone=None):
    u = User(
        id=str(uuid.uuid4()),
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        full_name="Test User",
        phone=phone,
        role=role,
        password_hash=hash_password("password123"),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def make_booking(db, user, hours_ahead=30, price="1000", status=BookingStatus.UPCOMING, payment_id=None, now=None):
    start = (now or datetime.now()) + timedelta(hours=hours_ahead, minutes=5)
    b = Booking(
        id=str(uuid.uuid4()),
        user_id=user.id,
        salon_id=str(uuid.uuid4()),
        salon_name="Glow Studio",
        service_name="Haircut",
        booking_date=start.strftime("%Y-%m-%d"),
        booking_time=start.strftime("%H:%M"),
        service_price=Decimal(price),
        status=status,
        payment_id=payment_id,
    )
    db.add(b)
    db.commit()
    return b


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
