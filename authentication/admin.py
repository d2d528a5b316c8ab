from django.contrib import admin

from .models import AuditLog, Role, User, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    fk_name = "user"
    extra = 0
    readonly_fields = ["assigned_by", "assigned_at"]


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ["email", "username", "is_active", "failed_login_attempts", "account_locked_until", "created_at"]
    list_filter = ["is_active", "is_superuser", "roles"]
    search_fields = ["email", "username", "first_name", "last_name"]
    readonly_fields = ["password", "created_at", "updated_at", "last_login", "date_joined", "last_failed_login"]
    exclude = ["groups", "user_permissions"]
    inlines = [UserRoleInline]


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ["name", "display_name", "is_active"]
    list_filter = ["is_active"]


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Audit rows are browsed, never written, from the admin."""

    list_display = ["timestamp", "action", "resource_type", "resource_id", "user", "status", "ip_address"]
    list_filter = ["action", "resource_type", "status"]
    search_fields = ["user__email", "resource_id", "ip_address"]
    date_hierarchy = "timestamp"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
