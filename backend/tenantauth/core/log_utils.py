# backend/tenantauth/core/log_utils.py
"""Helpers for logging user-controlled values safely.

Login identifiers, user agents and event details all originate from the
client. Anything that ends up in a log line goes through ``sanitize_for_log``
first so a crafted identifier cannot forge extra log entries or smuggle
terminal escape sequences into an operator's console.

WARNING: This sanitizer does NOT prevent format-string injection.
Always use: logger.info("%s", user_input) NOT logger.info(user_input)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

# Complete ANSI escape handling: CSI, OSC, and single-char ESC sequences
_ANSI_RE = re.compile(
    r"""
    \x1B
    (?:
        [@-Z\\-_]                          # 7-bit C1 control (Fe)
      | \[ [0-?]* [ -/]* [@-~]             # CSI ... Cmd (ECMA-48)
      | \] (?: [^\x07\x1B]* (?:\x07|\x1B\\))  # OSC ... BEL or ST
    )
    """,
    re.VERBOSE,
)

# Control characters excluding \t, \n, \r (escaped separately)
_UNSAFE_CTRL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

# Bidirectional control characters ("Trojan Source" visual tricks)
_BIDI_RE = re.compile(r"[\u202A-\u202E\u2066-\u2069\u200E\u200F]")

_INVISIBLE_RE = re.compile(r"[\u200B-\u200D\u2060\u00AD]")


def sanitize_for_log(value: Any, max_length: int | None = 1000) -> str:
    """Sanitize a user-controlled value for a line-oriented log.

    Examples:
        >>> sanitize_for_log("Hello\\nWorld")
        'Hello\\\\nWorld'
        >>> sanitize_for_log("User: \\x1b[31mRED\\x1b[0m")
        'User: RED'
        >>> sanitize_for_log(None)
        '<None>'
    """
    if value is None:
        return "<None>"

    try:
        text = str(value)
    except Exception:
        return f"<Error converting to string: {type(value).__name__}>"

    text = _ANSI_RE.sub("", text)

    # Order matters: escape backslashes first to avoid double-escaping!
    text = (
        text.replace("\\", "\\\\")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )

    text = _UNSAFE_CTRL_RE.sub("", text)
    text = _BIDI_RE.sub("", text)
    text = _INVISIBLE_RE.sub("", text)

    if max_length is not None and len(text) > max_length:
        suffix = "...[truncated]"
        keep = max(0, max_length - len(suffix))
        text = text[:keep] + suffix

    return text


def safe_log_dict(data: Mapping[Any, Any], max_str_len: int = 200) -> dict[str, Any]:
    """Sanitize a flat mapping (e.g. security event details) for logging.

    Keys and string values are sanitized; primitives pass through; anything
    else is logged by its sanitized ``str()``.
    """
    out: dict[str, Any] = {}
    for key, value in data.items():
        safe_key = sanitize_for_log(key, max_length=100)
        if value is None or isinstance(value, (bool, int, float)):
            out[safe_key] = value
        else:
            out[safe_key] = sanitize_for_log(value, max_length=max_str_len)
    return out


def mask_email(email: str | None) -> str:
    """
    Mask an email for logs while keeping it recognisable.

    Keeps the first 3 chars of the local part plus the domain. Identifiers
    that are not emails (client profiles may log in by phone) keep only
    their last 3 characters.
    """
    if not email:
        return "unknown"

    if "@" not in email:
        cleaned = sanitize_for_log(email, max_length=64)
        return "***" + cleaned[-3:] if len(cleaned) > 3 else "***"

    local, domain = email.rsplit("@", 1)
    if len(local) > 3:
        masked_local = local[:3] + "***"
    else:
        masked_local = local[0] + "***" if local else "***"

    return f"{sanitize_for_log(masked_local, max_length=64)}@{sanitize_for_log(domain, max_length=255)}"
