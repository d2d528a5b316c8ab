from functools import wraps

from django.utils.translation import gettext_lazy as _
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from .context import RequestContext


class IsStaffMember(BasePermission):
    """
    Grants access to ADMIN and OPERATOR users (superusers count as ADMIN).
    """

    message = _("Only administrators and operators can perform this action.")

    def has_permission(self, request, view):
        return RequestContext.from_request(request).is_elevated


def role_required(*role_names):
    """
    Decorator to enforce that a request.user owns at least one of the supplied roles.
    Superusers bypass the check automatically.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(request, *args, **kwargs):
            context = RequestContext.from_request(request)
            if not context.is_authenticated:
                raise PermissionDenied(detail=_("Authentication credentials were not provided."))
            if not context.has_role(*role_names):
                raise PermissionDenied(detail=_("You do not have permission to perform this action."))
            return func(request, *args, **kwargs)

        return wrapper

    return decorator
