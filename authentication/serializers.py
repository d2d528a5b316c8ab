from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers, status

from core.exceptions import AuthenticationFailure

from .models import Role, User, UserRole


def _email_taken(email: str, exclude_pk=None) -> bool:
    queryset = User.objects.filter(email__iexact=email)
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    return queryset.exists()


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ["id", "name", "display_name", "description", "is_active", "created_at"]
        read_only_fields = ("id", "created_at")


class UserSerializer(serializers.ModelSerializer):
    roles = RoleSerializer(many=True, read_only=True)
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id", "email", "username", "first_name", "last_name", "full_name",
            "phone_number", "is_active", "roles", "created_at", "updated_at",
        ]
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """Fields a user may change on their own account."""

    email = serializers.EmailField(required=False)

    class Meta:
        model = User
        fields = ["email", "first_name", "last_name", "phone_number"]

    def validate_email(self, value: str) -> str:
        value = value.lower()
        if _email_taken(value, exclude_pk=getattr(self.instance, "pk", None)):
            raise AuthenticationFailure(_("Email is already in use."), status_code=status.HTTP_400_BAD_REQUEST)
        return value


class UserRegistrationSerializer(serializers.ModelSerializer):
    # Declared so the model's unique validator does not answer for duplicates.
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})
    password_confirm = serializers.CharField(write_only=True, style={"input_type": "password"})

    class Meta:
        model = User
        fields = ["email", "username", "first_name", "last_name", "phone_number", "password", "password_confirm"]

    def validate_email(self, value: str) -> str:
        value = value.lower()
        if _email_taken(value):
            raise AuthenticationFailure(_("Email is already registered."), status_code=status.HTTP_400_BAD_REQUEST)
        return value

    def validate(self, attrs):
        if attrs["password"] != attrs.pop("password_confirm"):
            raise serializers.ValidationError({"password_confirm": _("Passwords do not match.")})
        validate_password(attrs["password"])
        return attrs

    def create(self, validated_data):
        user = User.objects.create_user(**validated_data)
        role_name = getattr(settings, "DEFAULT_CUSTOMER_ROLE", Role.CUSTOMER)
        role = Role.objects.filter(name=role_name, is_active=True).first()
        if role is None:
            raise serializers.ValidationError(_("Default role %(role)s is not available.") % {"role": role_name})
        UserRole.objects.create(user=user, role=role)
        return user


class LoginSerializer(serializers.Serializer):
    """
    Email/password check with lockout.

    Each wrong password bumps the user's failure counter; reaching
    ``AUTH_LOCKOUT_THRESHOLD`` locks the account for ``AUTH_LOCKOUT_MINUTES``.
    Unknown emails and wrong passwords get the same answer.
    """

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})

    def validate(self, attrs):
        user = User.objects.filter(email__iexact=attrs["email"]).first()
        if user is None:
            raise AuthenticationFailure(_("Invalid credentials."))

        if user.is_account_locked:
            raise AuthenticationFailure(
                _("Account locked after repeated failures. Try again after %(until)s.")
                % {"until": timezone.localtime(user.account_locked_until).strftime("%Y-%m-%d %H:%M")}
            )

        authenticated = authenticate(self.context.get("request"), username=user.email, password=attrs["password"])
        if authenticated is None:
            user.record_failed_login(
                getattr(settings, "AUTH_LOCKOUT_THRESHOLD", 5),
                getattr(settings, "AUTH_LOCKOUT_MINUTES", 15),
            )
            raise AuthenticationFailure(_("Invalid credentials."))

        if user.failed_login_attempts:
            user.clear_failed_logins()
        return {"user": authenticated}


class RoleAssignmentSerializer(serializers.Serializer):
    """Replaces the role set of ``user_email`` with ``roles``."""

    user_email = serializers.EmailField()
    roles = serializers.ListField(child=serializers.CharField(max_length=32), allow_empty=False)

    def validate(self, attrs):
        user = User.objects.filter(email__iexact=attrs["user_email"]).first()
        if user is None:
            raise serializers.ValidationError({"user_email": _("No user with this email.")})

        requested = {name.upper() for name in attrs["roles"]}
        roles = list(Role.objects.filter(name__in=requested, is_active=True))
        unknown = requested - {role.name for role in roles}
        if unknown:
            raise serializers.ValidationError({"roles": _("Unknown or inactive roles: %(roles)s") % {"roles": ", ".join(sorted(unknown))}})

        attrs["user"] = user
        attrs["role_instances"] = roles
        return attrs

    def save(self, assigned_by=None):
        user = self.validated_data["user"]
        roles = self.validated_data["role_instances"]
        user.role_memberships.exclude(role__in=roles).delete()
        for role in roles:
            UserRole.objects.get_or_create(user=user, role=role, defaults={"assigned_by": assigned_by})
        return user
