"""
Transactional SMS.

Two interchangeable providers are tried in order (Twilio, then Fast2SMS); the
first one that accepts the message wins. Senders return ``False`` instead of
raising so a notification failure never reaches the payment path.
"""
import logging
import re
from typing import Callable

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


def to_e164(phone: str) -> str:
    phone = (phone or "").strip().replace(" ", "")
    return phone if phone.startswith("+") else f"{settings.SMS_DEFAULT_COUNTRY_CODE}{phone}"


def send_sms_twilio(phone: str, message: str) -> bool:
    sid, token, from_number = settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE_NUMBER
    if not (sid and token and from_number):
        logger.debug("Twilio credentials not configured")
        return False
    try:
        r = requests.post(
            f"https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json",
            auth=(sid, token),
            data={"To": to_e164(phone), "From": from_number, "Body": message},
            timeout=10,
        )
    except requests.RequestException as e:
        logger.error("Twilio request failed: %s", e)
        return False
    if r.status_code in (200, 201):
        logger.info("SMS sent via Twilio")
        return True
    logger.error("Twilio error %s: %s", r.status_code, r.text)
    return False


def send_sms_fast2sms(phone: str, message: str) -> bool:
    api_key = settings.FAST2SMS_API_KEY
    if not api_key:
        logger.debug("Fast2SMS API key not configured")
        return False
    # Fast2SMS wants bare 10-digit Indian numbers
    clean = re.sub(r"\D", "", re.sub(r"^\+91", "", (phone or "").strip()))
    try:
        r = requests.post(
            "https://www.fast2sms.com/dev/bulkV2",
            headers={"authorization": api_key},
            json={"route": "q", "message": message, "language": "english", "flash": 0, "numbers": clean},
            timeout=10,
        )
    except requests.RequestException as e:
        logger.error("Fast2SMS request failed: %s", e)
        return False
    try:
        ok = r.status_code < 400 and r.json().get("return") is True
    except ValueError:
        ok = False
    if ok:
        logger.info("SMS sent via Fast2SMS")
        return True
    logger.error("Fast2SMS error %s: %s", r.status_code, r.text)
    return False


SMS_PROVIDERS: tuple[tuple[str, Callable[[str, str], bool]], ...] = (
    ("twilio", send_sms_twilio),
    ("fast2sms", send_sms_fast2sms),
)


def send_sms(phone: str | None, message: str, providers=None) -> str | None:
    """Send through the first provider that succeeds; returns its name or None."""
    if not phone:
        return None
    for name, sender in providers or SMS_PROVIDERS:
        if sender(phone, message):
            return name
        logger.info("SMS provider %s failed, trying next", name)
    logger.warning("All SMS providers failed for %s", phone)
    return None
