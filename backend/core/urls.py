from django.contrib import admin
from django.urls import include, path

from .health import health_check

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/health/", health_check),
    path("api/health/", include("health.urls")),
    path("api/v1/auth/", include("apps.auth.urls")),
    path("api/v1/users/", include("apps.users.urls")),
    path("api/v1/audit/", include("apps.audit.urls")),
    # Plan endpoints are defined directly under /api/v1 (e.g., /api/v1/plans)
    # so this include must come after the more specific prefixes above.
    path("api/v1/", include("apps.plans.urls")),
]
