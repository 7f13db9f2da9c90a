from django.apps import AppConfig


class PlansConfig(AppConfig):
    name = "apps.plans"
    label = "plans"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from apps.audit import registry
        from apps.plans import routing, services

        # Misconfigured approval bands fail at start-up, not on first submit
        routing.load_policy()
        registry.register(
            services.ENTITY_TYPE,
            serialize=services.snapshot_plan,
        )
