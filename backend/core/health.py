import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"


def health_check(request):
    """GET /api/health/ - database connectivity only."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError as exc:
        logger.warning("health_check_failed", extra={"error": str(exc)})
        return JsonResponse(
            {
                "status": "unhealthy",
                "database": "disconnected",
                "version": SERVICE_VERSION,
            },
            status=503,
        )
    return JsonResponse(
        {"status": "ok", "database": "connected", "version": SERVICE_VERSION},
        status=200,
    )
