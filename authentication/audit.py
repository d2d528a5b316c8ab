"""
Audit trail helpers shared by the API views.
"""

import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def record_audit_event(request, action, resource_type, resource_id, status, metadata=None):
    """
    Store an audit log entry for the current request.

    Args:
        request: HTTP request object
        action: Action type (CREATE, CANCEL, UPDATE_STATUS, ...)
        resource_type: Type of resource (PRODUCT, ORDER, USER)
        resource_id: ID of the resource, if known
        status: SUCCESS, FAILURE or BLOCKED
        metadata: Additional metadata to log

    An audit write that fails is logged with its traceback; the request itself
    carries on.
    """
    user = getattr(request, 'user', None)
    try:
        return AuditLog.objects.create(
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
            request_path=request.path,
            request_method=request.method,
            status=status,
            metadata=metadata or {},
        )
    except Exception:
        logger.exception(f"Could not record audit event {action} on {resource_type} {resource_id}")
        return None
