import logging

from django.core.cache import caches
from django.db import DatabaseError, connection
from django.db.migrations.executor import MigrationExecutor
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ConfigurationError
from apps.audit.models import AuditLogEntry
from apps.plans import routing

logger = logging.getLogger(__name__)


class LiveView(APIView):
    """Liveness check: process is running. No DB or external deps."""

    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"status": "alive"})


class ReadyView(APIView):
    """Readiness check: DB, migrations, cache, audit table, approval policy."""

    permission_classes = [AllowAny]

    def get(self, request):
        checks = self._run_checks()
        overall = "ready" if all(v == "ok" for v in checks.values()) else "not_ready"
        if overall != "ready":
            logger.warning("readiness_check_failed", extra={"checks": checks})
        return Response(
            {"status": overall, "checks": checks},
            status=200 if overall == "ready" else 503,
        )

    def _run_checks(self):
        checks = {}

        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1;")
            checks["database"] = "ok"
        except DatabaseError:
            checks["database"] = "error"

        try:
            executor = MigrationExecutor(connection)
            plan = executor.migration_plan(executor.loader.graph.leaf_nodes())
            checks["migrations"] = "ok" if not plan else "pending"
        except DatabaseError:
            checks["migrations"] = "error"

        cache = caches["default"]
        cache.set("health_check", "ok", timeout=5)
        checks["cache"] = "ok" if cache.get("health_check") == "ok" else "error"

        # Audit entries must be writable for any mutation to be recorded
        try:
            AuditLogEntry.objects.exists()
            checks["audit_table"] = "ok"
        except DatabaseError:
            checks["audit_table"] = "error"

        try:
            routing.get_policy()
            checks["approval_policy"] = "ok"
        except ConfigurationError:
            checks["approval_policy"] = "error"

        return checks
