"""
Users, roles and the API audit trail.

Users log in with their email address. Roles drive every authorization
decision in the order workflow: ADMIN and OPERATOR are staff roles, CUSTOMER
is granted on registration.
"""

from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone


class Role(models.Model):
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"
    CUSTOMER = "CUSTOMER"

    # Staff roles: they see every order and manage the catalog.
    ELEVATED = (ADMIN, OPERATOR)

    name = models.CharField(
        max_length=32,
        unique=True,
        validators=[RegexValidator(r"^[A-Z_]{3,32}$", "Use 3-32 uppercase letters or underscores.")],
    )
    display_name = models.CharField(max_length=64)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, help_text="Inactive roles cannot be assigned.")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("name",)

    def __str__(self) -> str:
        return self.display_name or self.name


class User(AbstractUser):
    """
    Order system account.

    The email address is the login. Failed password checks are counted and
    the account is locked for a while once the configured threshold is hit.
    """

    username = models.CharField(
        max_length=50,
        unique=True,
        validators=[RegexValidator(r"^[A-Za-z0-9_.-]{3,50}$", "Use 3-50 letters, digits, '_', '.' or '-'.")],
    )
    email = models.EmailField(unique=True)
    phone_number = models.CharField(
        max_length=20,
        blank=True,
        validators=[RegexValidator(r"^\+?[1-9]\d{7,14}$", "Enter 8-15 digits with an optional leading '+'.")],
    )
    roles = models.ManyToManyField(
        Role,
        through="UserRole",
        through_fields=("user", "role"),
        related_name="users",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    failed_login_attempts = models.PositiveIntegerField(default=0)
    last_failed_login = models.DateTimeField(null=True, blank=True)
    account_locked_until = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["username"]

    objects = UserManager()

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("email",), name="auth_user_email_idx"),
            models.Index(fields=("username",), name="auth_user_username_idx"),
        ]

    def __str__(self) -> str:
        return self.email

    @property
    def full_name(self) -> str:
        return self.get_full_name() or self.username

    @property
    def is_account_locked(self) -> bool:
        return self.account_locked_until is not None and timezone.now() < self.account_locked_until

    def record_failed_login(self, threshold: int, lock_minutes: int) -> None:
        self.failed_login_attempts += 1
        self.last_failed_login = timezone.now()
        if self.failed_login_attempts >= threshold:
            self.account_locked_until = self.last_failed_login + timedelta(minutes=lock_minutes)
        self.save(update_fields=["failed_login_attempts", "last_failed_login", "account_locked_until"])

    def clear_failed_logins(self) -> None:
        self.failed_login_attempts = 0
        self.last_failed_login = None
        self.account_locked_until = None
        self.save(update_fields=["failed_login_attempts", "last_failed_login", "account_locked_until"])

    def role_names(self) -> frozenset:
        """Names of the active roles held; superusers always count as ADMIN."""
        names = set(self.roles.filter(is_active=True).values_list("name", flat=True))
        if self.is_superuser:
            names.add(Role.ADMIN)
        return frozenset(names)

    def has_role(self, *role_names: str) -> bool:
        return not self.role_names().isdisjoint(role_names)


class UserRole(models.Model):
    """Role membership, with the administrator who granted it."""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="role_memberships")
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="role_memberships")
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="roles_granted",
    )
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "role")
        ordering = ("-assigned_at",)

    def __str__(self) -> str:
        return f"{self.user.email}: {self.role.name}"


class AuditLog(models.Model):
    """
    One row per audited API write: order placement, status and payment
    changes, cancellations, stock movements, catalog edits and role grants.

    Rows are never edited. ``metadata`` carries the action details, for
    example the new status or the error code of a failed attempt.
    """

    class Status(models.TextChoices):
        SUCCESS = "SUCCESS", "Success"
        FAILURE = "FAILURE", "Failure"
        BLOCKED = "BLOCKED", "Blocked"

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=100, db_index=True)
    resource_type = models.CharField(max_length=100, db_index=True)
    resource_id = models.CharField(max_length=100, null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_path = models.CharField(max_length=500, blank=True)
    request_method = models.CharField(max_length=10, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SUCCESS, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"], name="audit_user_ts_idx"),
            models.Index(fields=["action", "status", "timestamp"], name="audit_action_status_ts_idx"),
            models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
        ]

    def __str__(self):
        actor = self.user.email if self.user else "anonymous"
        return f"{self.action} {self.resource_type}#{self.resource_id} by {actor}: {self.status}"
