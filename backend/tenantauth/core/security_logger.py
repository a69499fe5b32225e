# backend/tenantauth/core/security_logger.py
"""
Local security log for fail2ban integration.

The audit trail proper lives in the platform's ``security_events`` table.
This file-backed mirror keeps the login-abuse signal on the host even when
the platform is unreachable, in a format fail2ban can parse:

    2026-01-05 10:15:30 SECURITY [EVENT_TYPE] ip=x.x.x.x field=value ...

All user-controlled fields go through ``log_utils`` so they cannot inject
fake entries.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from tenantauth.core.log_utils import mask_email, sanitize_for_log


def _field(value: str | None, max_length: int = 255) -> str:
    if not value:
        return "unknown"
    # Brackets and spaces would break the fail2ban failregex.
    cleaned = sanitize_for_log(value, max_length=max_length)
    return cleaned.replace("[", "").replace("]", "").replace(" ", "_")


class SecurityLogger:
    """
    fail2ban-compatible logger for authentication abuse signals.

    Create one per process (``tenantauth.main`` does so in its lifespan) and
    pass it to the services that need it. ``log_path=None`` keeps the
    records on the ``security`` logger without attaching a file handler,
    which is what tests use.
    """

    def __init__(self, log_path: str | Path | None = None, logger_name: str = "security"):
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

        if log_path is not None and not self.logger.handlers:
            path = Path(log_path)
            path.parent.mkdir(parents=True, exist_ok=True)

            # Rotating file handler: 50MB max, keep 10 backups
            handler = RotatingFileHandler(
                str(path),
                maxBytes=50 * 1024 * 1024,
                backupCount=10,
            )
            # The message carries "EVENT_TYPE] field=value ..."
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s SECURITY [%(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(handler)

    def failed_login(self, ip: str | None, email: str, reason: str) -> None:
        """
        Log a failed login attempt.

        Args:
            ip: Client IP address
            email: Identifier that was attempted
            reason: BAD_CREDENTIALS, UNKNOWN_EMAIL, ACCOUNT_LOCKED, LOCKED_ACCOUNT_ATTEMPT
        """
        self.logger.info(
            f"FAILED_LOGIN] ip={_field(ip)} email={_field(mask_email(email))} reason={_field(reason)}"
        )

    def successful_login(self, ip: str | None, email: str, method: str = "password") -> None:
        """Log a successful login (for audit trail, not for banning)."""
        self.logger.info(
            f"LOGIN_SUCCESS] ip={_field(ip)} email={_field(mask_email(email))} method={_field(method)}"
        )

    def rate_limited(self, ip: str | None, identifier: str) -> None:
        """
        Log a rate limit violation.

        Args:
            ip: Client IP address
            identifier: The rate-limit key that was exceeded
        """
        self.logger.info(
            f"RATE_LIMIT] ip={_field(ip)} key={_field(identifier, max_length=100)}"
        )
