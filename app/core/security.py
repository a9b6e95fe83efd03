import base64
import binascii
import hashlib
import hmac
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings

SESSION_MAX_AGE = 7 * 24 * 3600


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="storyboard-chat-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    return get_session_serializer().dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    """Decode an `Authorization: Basic ...` header into (username, password)."""
    if not header or not header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(header[6:], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def verify_basic_auth(header: str | None, username: str, password: str) -> bool:
    """Constant-time check of Basic credentials. Unconfigured credentials never match."""
    if not username or not password:
        return False
    creds = parse_basic_auth(header)
    if creds is None:
        return False
    user_ok = hmac.compare_digest(creds[0].encode("utf-8"), username.encode("utf-8"))
    pass_ok = hmac.compare_digest(creds[1].encode("utf-8"), password.encode("utf-8"))
    return user_ok and pass_ok
