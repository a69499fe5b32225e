# backend/tenantauth/core/rate_limit.py
from slowapi.util import get_remote_address
from starlette.requests import Request

LOGIN_KEY_PREFIX = "login"


def login_rate_limit_key(request: Request) -> str:
    """
    Rate-limit key for login attempts, built from the socket peer.

    Forwarded headers are client-controlled and never part of the key.
    Behind a reverse proxy, run uvicorn with ``--proxy-headers`` and
    ``--forwarded-allow-ips`` so the peer address is the real client.
    """
    return f"{LOGIN_KEY_PREFIX}:{get_remote_address(request)}"
