"""
Lab Inventory Audit Service
===========================
Append-only audit trail of user-attributed mutations.

Recording is best-effort: the triggering operation has already committed
when record_audit() runs, so a failed audit write is logged and swallowed
rather than surfaced to the caller.
"""

import logging
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Tuple, Union

from sqlalchemy import desc
from sqlalchemy.orm import Session

from labinventory.exceptions import NotFoundError
from labinventory.models import AuditLog, AuditType, AuditAction, User, enum_value
from labinventory.session import get_session
from labinventory.utils import isoformat, page_offset

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_PAGE_SIZE = 50


class AuditService:
    """Records and queries audit log entries."""

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope for a series of operations."""
        with get_session() as session:
            yield session

    # ==================== Recording ====================

    def record_audit(
        self,
        type: Union[AuditType, str],
        action: Union[AuditAction, str],
        item_name: str,
        user_id: int,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[int]:
        """
        Append one audit entry.

        Args:
            type: Domain of the change ('chemical', 'equipment', 'user', ...)
            action: What happened ('add', 'update', 'delete', 'usage', ...)
            item_name: Display name of the item, copied at write time
            user_id: ID of the acting user
            details: JSON-serializable payload

        Returns:
            ID of the new entry, or None if the write failed.
        """
        try:
            with self.session_scope() as session:
                entry = AuditLog(
                    type=enum_value(type),
                    action=enum_value(action),
                    item_name=item_name,
                    user_id=user_id,
                    details=details or {},
                )
                session.add(entry)
                session.flush()
                return entry.id
        except Exception:
            logger.exception(
                f"Error adding audit log ({enum_value(type)}/{enum_value(action)} "
                f"'{item_name}' by user {user_id})"
            )
            return None

    # ==================== Queries ====================

    def list_audit(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = DEFAULT_AUDIT_PAGE_SIZE
    ) -> Tuple[List[Dict], int]:
        """
        Get a page of audit entries, newest first.

        Args:
            filters: Optional 'type' and/or 'action' to match exactly
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (entries, total matching entries)
        """
        filters = filters or {}
        with self.session_scope() as session:
            query = self._query_with_user(session)

            if filters.get('type'):
                query = query.filter(AuditLog.type == enum_value(filters['type']))
            if filters.get('action'):
                query = query.filter(AuditLog.action == enum_value(filters['action']))

            total = query.count()
            rows = (
                query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
                .offset(page_offset(page, limit))
                .limit(limit)
                .all()
            )
            return [self._audit_to_dict(entry, user_name) for entry, user_name in rows], total

    def get_audit_by_id(self, audit_id: int) -> Dict:
        """Get a single audit entry. Raises NotFoundError if it does not exist."""
        with self.session_scope() as session:
            row = self._query_with_user(session).filter(AuditLog.id == audit_id).first()
            if row is None:
                raise NotFoundError('audit_log', audit_id)
            entry, user_name = row
            return self._audit_to_dict(entry, user_name)

    def _query_with_user(self, session: Session):
        return session.query(AuditLog, User.name).join(User, AuditLog.user_id == User.id)

    def _audit_to_dict(self, entry: AuditLog, user_name: Optional[str]) -> Dict:
        """Convert AuditLog model to dictionary."""
        return {
            'id': entry.id,
            'type': entry.type,
            'action': entry.action,
            'item_name': entry.item_name,
            'user_id': entry.user_id,
            'user_name': user_name,
            'details': entry.details or {},
            'timestamp': isoformat(entry.timestamp),
        }


_audit_service: Optional[AuditService] = None


def get_audit_service() -> AuditService:
    """Get the singleton audit service instance."""
    global _audit_service
    if _audit_service is None:
        _audit_service = AuditService()
    return _audit_service


def record_audit(
    type: Union[AuditType, str],
    action: Union[AuditAction, str],
    item_name: str,
    user_id: int,
    details: Optional[Dict[str, Any]] = None
) -> Optional[int]:
    """Module-level shortcut for AuditService.record_audit()."""
    return get_audit_service().record_audit(type, action, item_name, user_id, details)
