import hashlib
import hmac
import json
from decimal import Decimal

from conftest import auth_header, make_booking, make_user

from app.models.audit_log import AuditLog
from app.models.booking import Booking, BookingStatus
from app.models.cancellation import CancellationPenalty
from app.models.payment import Payment
from app.models.webhook_log import WebhookLog
from app.services import penalty_service
from app.services.razorpay_client import payment_signature

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


def _pending_booking(db, price="499"):
    user = make_user(db, phone="9876543210")
    return user, make_booking(db, user, price=price, status=BookingStatus.PENDING_PAYMENT)


def test_create_order_uses_server_price(client, db, razorpay):
    _, b = _pending_booking(db)
    r = client.post("/api/v1/payments/razorpay/orders", json={"booking_id": b.id, "amount": 499})
    assert r.status_code == 200
    assert r.json() == {"orderId": "order_test_1", "keyId": "rzp_test_key", "amount": 49900, "currency": "INR"}
    name, call = razorpay.calls[0]
    assert name == "create_order"
    assert call["receipt"] == f"booking_{b.id}"[:40]
    assert call["notes"]["booking_id"] == b.id
    db.expire_all()
    assert db.get(Booking, b.id).razorpay_order_id == "order_test_1"


def test_create_order_rejects_tampered_amount(client, db, razorpay):
    _, b = _pending_booking(db)
    r = client.post("/api/v1/payments/razorpay/orders", json={"booking_id": b.id, "amount": 1})
    assert r.status_code == 400
    assert r.json()["detail"] == "Amount does not match booking price"
    assert razorpay.calls == []


def test_create_order_requires_booking(client, razorpay):
    assert client.post("/api/v1/payments/razorpay/orders", json={"amount": 499}).status_code == 400
    assert client.post("/api/v1/payments/razorpay/orders", json={"booking_id": "nope"}).status_code == 404


def test_verify_confirms_booking_on_valid_signature(client, db, outbox):
    user, b = _pending_booking(db)
    b.razorpay_order_id = "order_abc"
    db.commit()
    sig = payment_signature(KEY_SECRET, "order_abc", "pay_123")
    r = client.post("/api/v1/payments/razorpay/verify", json={
        "razorpay_order_id": "order_abc", "razorpay_payment_id": "pay_123",
        "razorpay_signature": sig, "booking_id": b.id,
    })
    assert r.status_code == 200
    assert r.json()["success"] is True

    db.expire_all()
    b = db.get(Booking, b.id)
    assert b.status == BookingStatus.CONFIRMED
    assert b.payment_id == "pay_123"
    p = db.query(Payment).filter_by(razorpay_payment_id="pay_123").one()
    assert p.platform_fee == Decimal("39.92")
    assert p.salon_amount == Decimal("459.08")
    assert any(subject.startswith("Payment Receipt") for _, subject in outbox)


def test_verify_rejects_bad_signature(client, db):
    _, b = _pending_booking(db)
    r = client.post("/api/v1/payments/razorpay/verify", json={
        "razorpay_order_id": "order_abc", "razorpay_payment_id": "pay_123",
        "razorpay_signature": "deadbeef", "booking_id": b.id,
    })
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Payment verification failed"}
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.PENDING_PAYMENT


def test_verify_rejects_order_from_another_booking(client, db):
    _, b = _pending_booking(db)
    b.razorpay_order_id = "order_mine"
    db.commit()
    sig = payment_signature(KEY_SECRET, "order_other", "pay_1")
    r = client.post("/api/v1/payments/razorpay/verify", json={
        "razorpay_order_id": "order_other", "razorpay_payment_id": "pay_1",
        "razorpay_signature": sig, "booking_id": b.id,
    })
    assert r.status_code == 400


def test_confirmation_settles_pending_penalties(client, db):
    user, b = _pending_booking(db)
    old = make_booking(db, user, status=BookingStatus.CANCELLED)
    penalty = penalty_service.create_penalty(db, old, Decimal("200"), 20)
    db.commit()
    b.razorpay_order_id = "order_abc"
    db.commit()
    client.post("/api/v1/payments/razorpay/verify", json={
        "razorpay_order_id": "order_abc", "razorpay_payment_id": "pay_9",
        "razorpay_signature": payment_signature(KEY_SECRET, "order_abc", "pay_9"), "booking_id": b.id,
    })
    db.expire_all()
    p = db.get(CancellationPenalty, penalty.id)
    assert p.is_paid and p.paid_booking_id == b.id


def test_reconcile_captured_confirms(client, db, razorpay):
    _, b = _pending_booking(db)
    razorpay.order_payments = {"items": [{"id": "pay_upi", "status": "captured", "method": "upi"}]}
    r = client.post("/api/v1/payments/razorpay/reconcile", json={"booking_id": b.id, "razorpay_order_id": "order_x"})
    assert r.json() == {"status": "captured", "payment_id": "pay_upi"}
    db.expire_all()
    b = db.get(Booking, b.id)
    assert b.status == BookingStatus.CONFIRMED
    assert b.payment_method == "upi"


def test_reconcile_pending_leaves_booking_alone(client, db, razorpay):
    _, b = _pending_booking(db)
    razorpay.order_payments = {"items": [{"id": "pay_upi", "status": "created"}]}
    r = client.post("/api/v1/payments/razorpay/reconcile", json={"booking_id": b.id, "razorpay_order_id": "order_x"})
    assert r.json()["status"] == "pending"
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.PENDING_PAYMENT


def test_reconcile_without_attempts_is_cancelled(client, db, razorpay):
    _, b = _pending_booking(db)
    r = client.post("/api/v1/payments/razorpay/reconcile", json={"booking_id": b.id, "razorpay_order_id": "order_x"})
    assert r.json() == {"status": "cancelled", "payments_count": 0}


def test_reconcile_all_failed_marks_payment_failed(client, db, razorpay):
    _, b = _pending_booking(db)
    razorpay.order_payments = {"items": [{"id": "pay_1", "status": "failed"}]}
    r = client.post("/api/v1/payments/razorpay/reconcile", json={"booking_id": b.id, "razorpay_order_id": "order_x"})
    assert r.json()["status"] == "failed"
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.PAYMENT_FAILED


def _signed(payload: dict):
    body = json.dumps(payload).encode()
    sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return body, {"x-razorpay-signature": sig, "content-type": "application/json"}


def test_webhook_capture_confirms_once(client, db):
    _, b = _pending_booking(db)
    body, headers = _signed({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_wh", "order_id": "order_wh", "method": "card",
                                           "status": "captured", "notes": {"booking_id": b.id}}}},
    })
    assert client.post("/api/v1/webhooks/razorpay", content=body, headers=headers).json()["already_processed"] is False
    assert client.post("/api/v1/webhooks/razorpay", content=body, headers=headers).json()["already_processed"] is True
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.CONFIRMED
    assert db.query(Payment).filter_by(razorpay_payment_id="pay_wh").count() == 1
    assert [w.status for w in db.query(WebhookLog).all()] == ["processed", "processed"]


def test_webhook_rejects_bad_signature(client, db):
    body, _ = _signed({"event": "payment.captured", "payload": {}})
    r = client.post("/api/v1/webhooks/razorpay", content=body, headers={"x-razorpay-signature": "0" * 64})
    assert r.status_code == 401
    assert client.post("/api/v1/webhooks/razorpay", content=body).status_code == 401
    assert db.query(WebhookLog).count() == 0


def test_webhook_authorized_does_not_confirm(client, db):
    _, b = _pending_booking(db)
    body, headers = _signed({
        "event": "payment.authorized",
        "payload": {"payment": {"entity": {"id": "pay_a", "notes": {"booking_id": b.id}}}},
    })
    assert client.post("/api/v1/webhooks/razorpay", content=body, headers=headers).json()["ignored"] is True
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.PENDING_PAYMENT


def test_late_capture_does_not_revive_cancelled_booking(client, db):
    user = make_user(db)
    b = make_booking(db, user, status=BookingStatus.CANCELLED)
    body, headers = _signed({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_late", "order_id": "o", "notes": {"booking_id": b.id}}}},
    })
    client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.CANCELLED
    assert db.query(AuditLog).filter_by(action="late_capture").count() == 1


def test_admin_refund(client, db, razorpay, outbox):
    admin = make_user(db, role="admin")
    customer = make_user(db)
    b = make_booking(db, customer, price="800", status=BookingStatus.CONFIRMED, payment_id="pay_orig")
    r = client.post("/api/v1/admin/payments/razorpay/refund", json={"booking_id": b.id, "refund_amount": 640},
                    headers=auth_header(admin))
    assert r.status_code == 200
    data = r.json()
    assert data["refund_id"] == "rfnd_test_1"
    assert data["refund_amount"] == "640"
    assert razorpay.calls[-1] == ("refund_payment", {"payment_id": "pay_orig", "amount_paise": 64000})
    db.expire_all()
    assert db.get(Booking, b.id).status == BookingStatus.REFUNDED
    assert any("Refund" in subject for _, subject in outbox)


def test_admin_refund_requires_admin(client, db, razorpay):
    customer = make_user(db)
    b = make_booking(db, customer, status=BookingStatus.CONFIRMED, payment_id="pay_orig")
    r = client.post("/api/v1/admin/payments/razorpay/refund", json={"booking_id": b.id}, headers=auth_header(customer))
    assert r.status_code == 403


def test_admin_refund_over_price_rejected(client, db, razorpay):
    admin = make_user(db, role="admin")
    b = make_booking(db, make_user(db), price="500", status=BookingStatus.CONFIRMED, payment_id="pay_orig")
    r = client.post("/api/v1/admin/payments/razorpay/refund", json={"booking_id": b.id, "refund_amount": 501},
                    headers=auth_header(admin))
    assert r.status_code == 400
    assert razorpay.calls == []


def test_webhook_capture_for_unknown_booking_is_not_found(client, db):
    body, headers = _signed({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_x", "order_id": "o", "notes": {"booking_id": "missing"}}}},
    })
    r = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)
    assert r.status_code == 404
    db.expire_all()
    log = db.query(WebhookLog).one()
    assert (log.status, log.error) == ("failed", "Booking not found")


def test_webhook_with_unparseable_body_is_bad_request(client, db):
    body = b"not json"
    sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    r = client.post("/api/v1/webhooks/razorpay", content=body, headers={"x-razorpay-signature": sig})
    assert r.status_code == 400
