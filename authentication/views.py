"""
Account endpoints: registration, login, profile, user and role administration.

Registration and login answer with the user and a simplejwt token pair; token
refresh and verification use simplejwt's own views (see ``urls.py``).
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils.translation import gettext_lazy as _
from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken

from core.responses import EnvelopePagination, success_response

from .audit import record_audit_event
from .models import AuditLog, Role
from .permissions import role_required
from .serializers import (
    LoginSerializer,
    RoleAssignmentSerializer,
    RoleSerializer,
    UserProfileSerializer,
    UserRegistrationSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()

AUTH_RATE = getattr(settings, "AUTH_RATE", "10/m")


def _session_payload(user) -> dict:
    refresh = RefreshToken.for_user(user)
    return {
        "user": UserSerializer(user).data,
        "tokens": {"refresh": str(refresh), "access": str(refresh.access_token)},
    }


@api_view(["POST"])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate=AUTH_RATE, method="POST")
def register_user(request):
    serializer = UserRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info(f"Registered user {user.email}")
    return success_response(_session_payload(user), _("Registration successful."), status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate=AUTH_RATE, method="POST")
def login_user(request):
    serializer = LoginSerializer(data=request.data, context={"request": request})
    serializer.is_valid(raise_exception=True)
    user = serializer.validated_data["user"]
    logger.info(f"User {user.email} logged in")
    return success_response(_session_payload(user), _("Login successful."))


@api_view(["GET", "PATCH"])
@permission_classes([IsAuthenticated])
def me(request):
    if request.method == "GET":
        return success_response(UserSerializer(request.user).data)

    serializer = UserProfileSerializer(request.user, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    record_audit_event(
        request, "UPDATE_PROFILE", "USER", user.pk, AuditLog.Status.SUCCESS,
        {"fields": sorted(serializer.validated_data)},
    )
    return success_response(UserSerializer(user).data, _("Profile updated successfully."))


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@role_required(Role.ADMIN)
def list_users(request):
    paginator = EnvelopePagination()
    page = paginator.paginate_queryset(User.objects.prefetch_related("roles"), request)
    return paginator.get_paginated_response(UserSerializer(page, many=True).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@role_required(Role.ADMIN)
def assign_roles(request):
    serializer = RoleAssignmentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save(assigned_by=request.user)
    granted = sorted(role.name for role in serializer.validated_data["role_instances"])
    logger.info(f"{request.user.email} set roles of {user.email} to {granted}")
    record_audit_event(request, "ASSIGN_ROLES", "USER", user.pk, AuditLog.Status.SUCCESS, {"roles": granted})
    return success_response(UserSerializer(user).data, _("Roles updated successfully."))


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
@role_required(Role.ADMIN)
def roles(request):
    if request.method == "GET":
        return success_response(RoleSerializer(Role.objects.all(), many=True).data)

    serializer = RoleSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    role = serializer.save()
    record_audit_event(request, "CREATE", "ROLE", role.pk, AuditLog.Status.SUCCESS, {"name": role.name})
    return success_response(RoleSerializer(role).data, _("Role created."), status.HTTP_201_CREATED)
