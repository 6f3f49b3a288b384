"""
Session Context

Explicit replacement for the browser storage the web frontend reads auth
fields from. A SessionStorage wraps any mutable string mapping and builds a
fresh SessionContext on every load, so callers never hold stale tokens.
"""

import json
import logging
from typing import Any, Dict, Mapping, MutableMapping, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Browser storage contract
TOKEN_KEY = "jwt_token"
USER_ID_KEY = "user_id"
USER_SLUG_KEY = "user_slug"
USER_NAME_KEY = "user_name"
USER_AVATAR_KEY = "user_avatar"
USER_ROLE_KEY = "user_role"
USER_EMAIL_KEY = "user_email"
USER_BLOB_KEY = "rejimde_user"

STORAGE_KEYS = (
    TOKEN_KEY,
    USER_ID_KEY,
    USER_SLUG_KEY,
    USER_NAME_KEY,
    USER_AVATAR_KEY,
    USER_ROLE_KEY,
    USER_EMAIL_KEY,
    USER_BLOB_KEY,
)

# Mirrored into cookies for server-side route gating
COOKIE_KEYS = (TOKEN_KEY, USER_ROLE_KEY)

PRO_ROLE = "rejimde_pro"
DEFAULT_ROLE = "rejimde_user"


def _decode_blob(raw: Optional[str]) -> Dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed rejimde_user blob in storage")
        return {}
    return value if isinstance(value, dict) else {}


class SessionContext(BaseModel):
    """Auth and identity fields for a single request."""

    token: Optional[str] = None
    user_id: Optional[int] = None
    user_slug: Optional[str] = None
    user_name: Optional[str] = None
    user_avatar: Optional[str] = None
    user_role: Optional[str] = None
    user_email: Optional[str] = None
    user: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_pro(self) -> bool:
        return self.user_role == PRO_ROLE

    def auth_headers(self) -> Dict[str, str]:
        """Return the Authorization header when a token is present."""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @classmethod
    def from_storage(cls, storage: Mapping[str, str]) -> "SessionContext":
        raw_id = storage.get(USER_ID_KEY)
        try:
            user_id = int(raw_id) if raw_id else None
        except ValueError:
            user_id = None

        return cls(
            token=storage.get(TOKEN_KEY) or None,
            user_id=user_id,
            user_slug=storage.get(USER_SLUG_KEY) or None,
            user_name=storage.get(USER_NAME_KEY) or None,
            user_avatar=storage.get(USER_AVATAR_KEY) or None,
            user_role=storage.get(USER_ROLE_KEY) or None,
            user_email=storage.get(USER_EMAIL_KEY) or None,
            user=_decode_blob(storage.get(USER_BLOB_KEY)),
        )

    @classmethod
    def from_cookies(
        cls,
        cookies: Mapping[str, str],
        authorization: Optional[str] = None,
    ) -> "SessionContext":
        """
        Build a context from request cookies.

        An explicit ``Authorization: Bearer`` header wins over the cookie.
        """
        token = cookies.get(TOKEN_KEY) or None
        if authorization and authorization.lower().startswith("bearer "):
            token = authorization[7:].strip() or token
        return cls(token=token, user_role=cookies.get(USER_ROLE_KEY) or None)

    def to_storage(self) -> Dict[str, str]:
        data = {
            TOKEN_KEY: self.token,
            USER_ID_KEY: str(self.user_id) if self.user_id is not None else None,
            USER_SLUG_KEY: self.user_slug,
            USER_NAME_KEY: self.user_name,
            USER_AVATAR_KEY: self.user_avatar,
            USER_ROLE_KEY: self.user_role,
            USER_EMAIL_KEY: self.user_email,
            USER_BLOB_KEY: json.dumps(self.user, ensure_ascii=False) if self.user else None,
        }
        return {key: value for key, value in data.items() if value is not None}

    def to_cookies(self) -> Dict[str, str]:
        stored = self.to_storage()
        return {key: stored[key] for key in COOKIE_KEYS if key in stored}


class SessionStorage:
    """
    Storage-backed session provider.

    Every ``load()`` reads the underlying mapping again; there is no cached
    context shared between requests.
    """

    def __init__(self, backend: Optional[MutableMapping[str, str]] = None):
        self.backend: MutableMapping[str, str] = backend if backend is not None else {}

    def load(self) -> SessionContext:
        return SessionContext.from_storage(self.backend)

    def get(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value is None or value == "":
            return
        self.backend[key] = str(value)

    def save(self, context: SessionContext) -> None:
        for key, value in context.to_storage().items():
            self.backend[key] = value

    def clear(self) -> None:
        for key in STORAGE_KEYS:
            self.backend.pop(key, None)

    def apply_login(
        self,
        data: Dict[str, Any],
        avatar: Optional[str] = None,
    ) -> None:
        """Persist the fields of a successful token response."""
        self.set(TOKEN_KEY, data.get("token"))
        self.set(USER_EMAIL_KEY, data.get("user_email"))
        self.set(USER_NAME_KEY, data.get("user_display_name"))
        self.set(USER_AVATAR_KEY, data.get("avatar_url") or avatar)
        self.set(USER_ID_KEY, data.get("user_id"))
        self.set(USER_SLUG_KEY, data.get("user_nicename") or data.get("user_slug"))

        roles = data.get("roles")
        if isinstance(roles, list) and roles:
            self.set(USER_ROLE_KEY, roles[0])

        logger.info(f"Session stored for {data.get('user_display_name') or 'user'}")
