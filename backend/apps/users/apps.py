from django.apps import AppConfig


class UsersConfig(AppConfig):
    name = "apps.users"
    label = "users"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from apps.audit import registry

        registry.register(
            "User",
            serialize=lambda user: {
                "id": str(user.id),
                "username": user.username,
                "display_name": user.display_name,
                "role": user.role,
                "department": user.department,
                "extra_permissions": list(user.extra_permissions or []),
            },
        )
