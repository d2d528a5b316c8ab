from django.db import migrations

ROLES = [
    ("ADMIN", "Administrator", "Full access to catalog, orders and user management."),
    ("OPERATOR", "Operator", "Staff member who manages inventory and the order lifecycle."),
    ("CUSTOMER", "Customer", "Places orders and reads their own order history."),
]


def seed_roles(apps, schema_editor):
    Role = apps.get_model("authentication", "Role")
    for name, display_name, description in ROLES:
        Role.objects.get_or_create(
            name=name,
            defaults={"display_name": display_name, "description": description},
        )


def remove_roles(apps, schema_editor):
    Role = apps.get_model("authentication", "Role")
    Role.objects.filter(name__in=[name for name, _, _ in ROLES]).delete()


class Migration(migrations.Migration):

    dependencies = [
        ("authentication", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_roles, remove_roles),
    ]
