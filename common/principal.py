"""Resolve who is making a request: a signed-in user, a guest session, or nobody."""

from dataclasses import dataclass
from typing import Optional

SESSION_HEADER = "X-Session-Id"


@dataclass(frozen=True)
class Principal:
    user: Optional[object] = None
    session_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_anonymous(self) -> bool:
        return self.user is None and not self.session_id

    @property
    def owner_ref(self) -> Optional[str]:
        """Stable owner identity: the user id when signed in, else the guest session id."""
        if self.user is not None:
            return str(self.user.pk)
        return self.session_id


def resolve_principal(request) -> Principal:
    """Build a Principal from a DRF request.

    Authentication itself is handled by the configured DRF authentication
    classes; guests identify themselves with the ``X-Session-Id`` header.
    """
    user = getattr(request, "user", None)
    session_id = (request.headers.get(SESSION_HEADER) or "").strip() or None
    if user is not None and getattr(user, "is_authenticated", False):
        return Principal(user=user, session_id=session_id)
    return Principal(user=None, session_id=session_id)
