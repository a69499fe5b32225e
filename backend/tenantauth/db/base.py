# backend/tenantauth/db/base.py

# Import all SQLAlchemy models so Alembic's autogenerate (and
# Base.metadata.create_all in tests) can discover them.
# When you add a new model, you must import it here.
from tenantauth.db.base_class import Base  # noqa: F401
from tenantauth.db.models.client_profile import ClientProfile  # noqa: F401
from tenantauth.db.models.profile import Profile  # noqa: F401
from tenantauth.db.models.security_event import SecurityEvent  # noqa: F401
