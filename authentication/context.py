"""
Explicit request context handed to every service call.

Views build a ``RequestContext`` once from the authenticated user and pass it
down. Permission checks inside the services are plain functions of this
object; nothing in the service layer looks up the current user on its own.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.exceptions import AccessDenied

from .models import Role


@dataclass(frozen=True)
class RequestContext:
    user_id: Optional[int]
    username: str
    roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def for_user(cls, user) -> "RequestContext":
        return cls(user_id=user.pk, username=user.email, roles=user.role_names())

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        cached = getattr(request, "_request_context", None)
        if cached is not None:
            return cached
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            context = cls.for_user(user)
        else:
            context = cls.anonymous()
        request._request_context = context
        return context

    @classmethod
    def anonymous(cls) -> "RequestContext":
        return cls(user_id=None, username="anonymous")

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, *role_names: str) -> bool:
        return any(name in self.roles for name in role_names)

    @property
    def is_elevated(self) -> bool:
        return self.has_role(*Role.ELEVATED)

    def owns(self, user_id: Optional[int]) -> bool:
        return self.user_id is not None and self.user_id == user_id

    def require_elevated(self, message: Optional[str] = None) -> None:
        if not self.is_elevated:
            raise AccessDenied(message or "Only administrators and operators can perform this action.")
