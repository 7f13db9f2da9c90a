"""
Audit service - records immutable, diff-based audit log entries.

Rules:
- Entries are append-only. No updates or deletions.
- record() never raises to its caller. A failure is logged to the
  "audit.reconciliation" logger with the attempted payload so the
  reconcile_plans command can replay it.
- audited() is the two-phase wrapper used by the service layers: it takes
  the before state from the locked row, runs the business operation, captures
  the state after and records the diff only once the operation has returned.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Optional

from django.db import transaction

from core.exceptions import AuditRecordingFailure
from core.middleware import get_current_request_id
from apps.audit import registry
from apps.audit.models import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)
reconciliation_logger = logging.getLogger("audit.reconciliation")

SYSTEM_ROLE = "SYSTEM"


@dataclass(frozen=True)
class AuditContext:
    """Request metadata stored alongside every entry."""

    ip_address: Optional[str] = None
    request_id: Optional[str] = None
    session_id: Optional[str] = None
    http_method: Optional[str] = None
    path: Optional[str] = None

    @classmethod
    def from_request(cls, request):
        meta = request.META
        forwarded = meta.get("HTTP_X_FORWARDED_FOR", "")
        ip_address = forwarded.split(",")[0].strip() if forwarded else None
        session_id = meta.get("HTTP_X_SESSION_ID")
        if not session_id:
            session = getattr(request, "session", None)
            session_id = getattr(session, "session_key", None)
        return cls(
            ip_address=ip_address or meta.get("REMOTE_ADDR"),
            request_id=getattr(request, "request_id", None)
            or get_current_request_id(),
            session_id=session_id,
            http_method=request.method,
            path=request.path[:500],
        )

    @classmethod
    def system(cls, source="system"):
        return cls(request_id=get_current_request_id(), path=source)


def compute_field_diff(before, after):
    """
    Compare top-level fields of two snapshots.

    Returns {field: {"from": old, "to": new, "kind": "changed"|"added"|"removed"}}.
    Nested values are compared as whole values, not recursively.
    """
    before = before or {}
    after = after or {}
    diff = {}
    for key in sorted(set(before) | set(after)):
        if key in before and key in after:
            if before[key] != after[key]:
                diff[key] = {"from": before[key], "to": after[key], "kind": "changed"}
        elif key in after:
            diff[key] = {"from": None, "to": after[key], "kind": "added"}
        else:
            diff[key] = {"from": before[key], "to": None, "kind": "removed"}
    return diff


def _actor_fields(actor):
    if actor is None:
        return None, SYSTEM_ROLE
    return getattr(actor, "id", None), getattr(actor, "role", None) or SYSTEM_ROLE


def _persist(payload):
    with transaction.atomic():
        return AuditLogEntry.objects.create(**payload)


def record(operation, entity_type, entity_id, actor, before, after, context=None):
    """
    Persist one audit entry. Returns the entry, or None if recording failed.

    Args:
        operation: one of AuditAction
        entity_type: registered entity type name (e.g. 'Plan')
        entity_id: identifier of the affected entity
        actor: Actor (or user) performing the operation; None for system steps
        before: snapshot before the operation (None on creation)
        after: snapshot after the operation (None on deletion)
        context: AuditContext
    """
    context = context or AuditContext()
    actor_id, actor_role = _actor_fields(actor)
    before = registry.to_json_safe(before)
    after = registry.to_json_safe(after)
    payload = {
        "entry_id": uuid.uuid4(),
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": operation,
        "actor_id": actor_id,
        "actor_role": actor_role,
        "old_state": before,
        "new_state": after,
        "field_diff": compute_field_diff(before, after),
        **asdict(context),
    }

    try:
        if operation not in AuditAction.values:
            raise AuditRecordingFailure(f"Unknown audit operation: {operation}", payload)
        try:
            entry = _persist(payload)
        except Exception as exc:
            raise AuditRecordingFailure(str(exc), payload) from exc
    except AuditRecordingFailure as failure:
        reconciliation_logger.error(
            "audit_recording_failed",
            extra={
                "operation": operation,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "error": str(failure),
                "payload": registry.to_json_safe(failure.payload),
            },
        )
        return None

    logger.debug(
        "audit_entry_recorded",
        extra={
            "operation": operation,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "sequence": entry.sequence,
        },
    )
    return entry


def audited(
    operation,
    entity_type,
    entity_id,
    actor,
    context,
    call: Callable[[Callable[[Any], Any]], Any],
    *,
    entity_id_of: Callable[[Any], Any] = lambda entity: entity.pk,
):
    """
    Run call(capture) and record its effect on entity_type/entity_id.

    - call() receives capture(entity). For an existing entity it must pass the
      row it locked before changing it; that snapshot is the before state.
      Only the first capture counts.
    - entity_id None means creation: there is no before snapshot.
    - If call() raises, nothing is recorded and the exception propagates.
    - If the before and after snapshots are identical (a no-op), nothing is
      recorded.
    - call() must have committed its transaction when it returns.

    Returns whatever call() returned.
    """
    captured = {}

    def capture(entity):
        captured.setdefault("before", registry.serialize(entity_type, entity))
        return entity

    result = call(capture)

    before = captured.get("before")
    after = registry.serialize(entity_type, result)
    if before is not None and before == after:
        return result

    record(
        operation,
        entity_type,
        entity_id if entity_id is not None else entity_id_of(result),
        actor,
        before,
        after,
        context,
    )
    return result


def replay_failed_entries(lines: Iterable[str]):
    """
    Re-record payloads written by the reconciliation logger.

    Each line is a JSON log record whose "payload" key holds the entry that
    failed to persist. Returns (replayed, skipped).
    """
    replayed = skipped = 0
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line).get("payload")
        except json.JSONDecodeError:
            skipped += 1
            continue
        if not payload:
            skipped += 1
            continue
        if AuditLogEntry.objects.filter(entry_id=payload.get("entry_id")).exists():
            skipped += 1
            continue
        try:
            _persist(payload)
        except Exception as exc:
            logger.warning(
                "audit_replay_failed",
                extra={"entity_id": payload.get("entity_id"), "error": str(exc)},
            )
            skipped += 1
            continue
        replayed += 1
    return replayed, skipped
