from decimal import Decimal

from conftest import make_user

from app.models.email_log import EmailLog
from app.models.notification import Notification
from app.services import email_service, notification_service, sms_service


def test_sms_falls_back_to_second_provider():
    calls = []

    def failing(phone, message):
        calls.append("twilio")
        return False

    def working(phone, message):
        calls.append("fast2sms")
        return True

    assert sms_service.send_sms("9876543210", "hi", providers=(("twilio", failing), ("fast2sms", working))) == "fast2sms"
    assert calls == ["twilio", "fast2sms"]


def test_sms_stops_at_first_success():
    calls = []
    providers = (("a", lambda p, m: calls.append("a") or True), ("b", lambda p, m: calls.append("b") or True))
    assert sms_service.send_sms("9876543210", "hi", providers=providers) == "a"
    assert calls == ["a"]


def test_sms_without_phone_or_providers():
    assert sms_service.send_sms(None, "hi") is None
    assert sms_service.send_sms("9876543210", "hi", providers=(("x", lambda p, m: False),)) is None


def test_unconfigured_providers_report_failure():
    assert sms_service.send_sms_twilio("9876543210", "hi") is False
    assert sms_service.send_sms_fast2sms("9876543210", "hi") is False


def test_e164():
    assert sms_service.to_e164("98765 43210") == "+919876543210"
    assert sms_service.to_e164("+14155550100") == "+14155550100"


def test_refund_notification_all_channels(db, outbox, monkeypatch):
    monkeypatch.setattr(sms_service, "SMS_PROVIDERS", (("fake", lambda p, m: True),))
    user = make_user(db, phone="9876543210")
    result = notification_service.send_refund_notification(
        db, user_id=user.id, booking_id="bk_1", salon_name="Glow Studio", service_name="Haircut",
        refund_amount=Decimal("800.00"), refund_status="processed", refund_id="rfnd_1",
    )
    assert result == {"email": True, "sms": "fake", "inApp": True}
    assert outbox[0][1] == "Refund Processed - Grumming"
    n = db.query(Notification).filter_by(user_id=user.id).one()
    assert "Rs.800" in n.message


def test_email_failure_is_swallowed_and_left_for_retry(db, monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("smtp down")

    monkeypatch.setattr(email_service, "send_email", boom)
    user = make_user(db)
    result = notification_service.send_refund_notification(
        db, user_id=user.id, booking_id="bk_1", salon_name="Glow Studio", service_name="Haircut",
        refund_amount=150, refund_status="initiated",
    )
    assert result["inApp"] is True
    log = db.query(EmailLog).one()
    assert log.status == "failed"
    assert log.attempts == 1


def test_failed_emails_are_retried_by_worker(db, monkeypatch, outbox):
    def down(*args, **kwargs):
        raise OSError("down")

    monkeypatch.setattr(email_service, "send_email", down)
    email_service.queue_email(db, "a@example.com", "Subject", "Body")
    monkeypatch.setattr(email_service, "send_email", lambda to_email, subject, body, html=None: outbox.append(subject))

    assert email_service.process_pending_emails(db)["sent"] == 1
    assert db.query(EmailLog).one().status == "sent"


def test_unknown_refund_status_sends_nothing(db, outbox):
    user = make_user(db)
    result = notification_service.send_refund_notification(
        db, user_id=user.id, booking_id="bk_1", salon_name="S", service_name="X",
        refund_amount=1, refund_status="bogus",
    )
    assert result == {"email": False, "sms": None, "inApp": False}
    assert outbox == []
