# SQLModel definitions: imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, UTCDateTime  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .membership import OrganizationMembership  # noqa: F401
from .api_token import ApiToken  # noqa: F401
from .user_session import UserSession  # noqa: F401
from .passkey_credential import PasskeyCredential  # noqa: F401
from .invitation import Invitation  # noqa: F401
