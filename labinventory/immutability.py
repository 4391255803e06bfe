"""
Audit Trail Immutability
========================
ORM event listeners that reject any UPDATE or DELETE of an AuditLog row.

The service layer exposes no mutation path for audit rows; these listeners
catch anything that tries to go around it through the ORM. Bulk
query-level UPDATE/DELETE statements do not pass through mapper events.
"""

import logging

from sqlalchemy import event

from labinventory.exceptions import ImmutabilityViolationError
from labinventory.models import AuditLog

logger = logging.getLogger(__name__)

_registered = False


def _check_audit_log_update(mapper, connection, target):
    """Prevent any updates to AuditLog records."""
    logger.error(f"Blocked UPDATE of audit log {target.id}")
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=target.id,
        reason="Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    """Prevent deletion of AuditLog records."""
    logger.error(f"Blocked DELETE of audit log {target.id}")
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=target.id,
        reason="Audit log entries cannot be deleted",
    )


def register_immutability_listeners():
    """Register the audit log listeners. Safe to call more than once."""
    global _registered
    if _registered:
        return
    event.listen(AuditLog, "before_update", _check_audit_log_update)
    event.listen(AuditLog, "before_delete", _check_audit_log_delete)
    _registered = True
