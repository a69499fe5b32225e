# backend/tenantauth/crud/__init__.py
"""
CRUD operations package for the application.
This module re-exports the CRUD operations from the underlying modules.
"""

from .crud_client_profile import client_profile
from .crud_profile import profile
from .crud_security_event import security_event

__all__ = ["client_profile", "profile", "security_event"]
