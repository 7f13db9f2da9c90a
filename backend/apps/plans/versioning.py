"""
Version locking helper for plan mutations.
Every accepted mutation increments Plan.version by exactly one.
"""
from django.db.models import F
from core.exceptions import ConflictError


def version_locked_update(queryset, current_version, **updates):
    """
    Perform version-locked update on queryset.

    Args:
        queryset: Django QuerySet to update (normally a single plan)
        current_version: Version the caller read before mutating
        **updates: Fields to update

    Returns:
        int: Number of rows updated (always 1)

    Raises:
        ConflictError: If another writer incremented the version first
    """
    updated_count = queryset.filter(version=current_version).update(
        **updates,
        version=F("version") + 1,
    )

    if updated_count == 0:
        latest = queryset.values_list("version", flat=True).first()
        raise ConflictError(
            "Plan was modified concurrently. Refetch and reapply the change.",
            {"expectedVersion": current_version, "currentVersion": latest},
        )

    return updated_count
