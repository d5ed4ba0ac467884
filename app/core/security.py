from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
ALGO = "HS256"

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _encode(claims: dict, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode({**claims, "iat": now, "exp": now + lifetime}, settings.SECRET_KEY, algorithm=ALGO)


def create_access_token(user_id: str, role: str, expires_minutes: int | None = None) -> str:
    """Short-lived API token. Carries the role it was issued for so a demoted
    admin's outstanding tokens stop working."""
    minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    return _encode({"sub": user_id, "role": role, "type": ACCESS}, timedelta(minutes=minutes))


def create_refresh_token(user_id: str, expires_days: int | None = None) -> str:
    days = settings.REFRESH_TOKEN_EXPIRE_DAYS if expires_days is None else expires_days
    return _encode({"sub": user_id, "type": REFRESH}, timedelta(days=days))


def decode_token(token: str, expected_type: str) -> dict:
    """Decode and check the token type; raises jose.JWTError on any mismatch."""
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise JWTError(f"expected a {expected_type} token")
    return payload
