# backend/tenantauth/core/security.py

import base64
import binascii
import hmac
import json
import logging
import re
import secrets
import time
from collections.abc import Iterable, MutableMapping
from typing import NamedTuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

CSRF_TOKEN_KEY = "csrf_token"
PASSWORD_MIN_LENGTH = 8
PASSWORD_SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

_SCRIPT_BLOCK_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_JS_SCHEME_RE = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)
_SPECIAL_CHAR_RE = re.compile("[" + re.escape(PASSWORD_SPECIAL_CHARACTERS) + "]")

# --- Password Hashing ---
password_hasher = PasswordHasher()


def get_password_hash(password: str) -> str:
    """Hashes a password with Argon2id."""
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies a plain password against a stored hash. Malformed hashes never verify."""
    try:
        return password_hasher.verify(hashed_password, plain_password)
    except (VerificationError, InvalidHashError):
        return False


class PasswordPolicyResult(NamedTuple):
    """Outcome of a password policy check."""

    is_valid: bool
    errors: list[str]


def enforce_password_policy(password: str) -> PasswordPolicyResult:
    """Check a password against the five independent policy rules."""
    errors: list[str] = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_CHAR_RE.search(password):
        errors.append("Password must contain at least one special character")

    return PasswordPolicyResult(is_valid=not errors, errors=errors)


def sanitize_input(value: str) -> str:
    """Strip script blocks, HTML tags, ``javascript:`` and inline event handlers."""
    value = _SCRIPT_BLOCK_RE.sub("", value)
    value = _TAG_RE.sub("", value)
    value = _JS_SCHEME_RE.sub("", value)
    return _INLINE_HANDLER_RE.sub("", value)


def generate_csrf_token(store: MutableMapping[str, str]) -> str:
    """Issue a CSRF token and remember it in ``store`` (the caller's session storage)."""
    token = secrets.token_urlsafe(16)
    store[CSRF_TOKEN_KEY] = token
    return token


def validate_csrf_token(token: str | None, store: MutableMapping[str, str]) -> bool:
    stored = store.get(CSRF_TOKEN_KEY)
    if not token or not stored:
        return False
    return hmac.compare_digest(token.encode(), stored.encode())


def encode_sensitive_data(data: str) -> str:
    """
    Reversible base64 encoding for values kept in client storage.

    This is obfuscation, not encryption. Anything that must stay secret
    belongs in the platform's encrypted credential store.
    """
    return base64.b64encode(data.encode("utf-8")).decode("ascii")


def decode_sensitive_data(encoded: str) -> str:
    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.error(f"Failed to decode sensitive data: {e}")
        return ""


def detect_suspicious_activity(patterns: Iterable[str], user_agent: str, url: str) -> bool:
    """Case-insensitive match of any pattern against the user agent or URL."""
    user_agent = user_agent.lower()
    url = url.lower()
    return any(p.lower() in user_agent or p.lower() in url for p in patterns)


def is_session_token_valid(session_data: str | None, now: float | None = None) -> bool:
    """
    Check a serialized platform session for expiry.

    ``session_data`` is the JSON the platform client persists, with
    ``expires_at`` in epoch seconds. Missing or unreadable data is invalid.
    """
    if not session_data:
        return False
    try:
        session = json.loads(session_data)
        expires_at = float(session["expires_at"])
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Session validation error: {e}")
        return False
    current = time.time() if now is None else now
    return expires_at > current
