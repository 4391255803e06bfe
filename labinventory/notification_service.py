"""
Lab Inventory Notification Service
==================================
Notification storage/reading and the alert sweep.

The sweep runs three independent scans over current inventory state:

- low stock: current_quantity <= initial_quantity * LOW_STOCK_RATIO
- expiration: today < expiration_date <= today + EXPIRATION_WINDOW_MONTHS
- maintenance: today < next_maintenance <= today + MAINTENANCE_WINDOW_DAYS

An item is skipped while it already has an unread notification of the same
type, so at most one unread notification exists per (type, item). Marking
it read lets the condition fire again on the next sweep.

The sweep is an entry point for any scheduler (cron via run_sweep.py, the
REST API, an orchestrator). Overlapping runs are excluded by a lease row.
"""

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple, Union

from sqlalchemy import and_, case, delete, desc, exists, func, update
from sqlalchemy.exc import IntegrityError

from labinventory.config import Settings, get_settings
from labinventory.exceptions import NotFoundError, SweepInProgressError, ValidationError
from labinventory.models import (
    Chemical, Equipment, Notification, SweepLease,
    NotificationType, ItemType, enum_value
)
from labinventory.session import get_session
from labinventory.utils import add_months, isoformat, page_offset

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_PAGE_SIZE = 20
SWEEP_LEASE_NAME = 'notification_sweep'


class NotificationService:
    """Lists, counts, acknowledges and deletes notifications."""

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope for a series of operations."""
        with get_session() as session:
            yield session

    def create_notification(
        self,
        type: Union[NotificationType, str],
        title: str,
        message: str,
        item_type: Union[ItemType, str, None] = None,
        item_id: Optional[int] = None
    ) -> Dict:
        """Create a notification explicitly (outside the sweep)."""
        type = enum_value(type)
        item_type = enum_value(item_type)
        if type not in {t.value for t in NotificationType}:
            raise ValidationError(f"Invalid notification type '{type}'")
        if item_type is not None and item_type not in {t.value for t in ItemType}:
            raise ValidationError(f"Invalid item type '{item_type}'")

        with self.session_scope() as session:
            notification = Notification(
                type=type,
                title=title,
                message=message,
                item_type=item_type,
                item_id=item_id,
            )
            session.add(notification)
            session.flush()
            return self._notification_to_dict(notification)

    def list_notifications(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = DEFAULT_NOTIFICATION_PAGE_SIZE
    ) -> List[Dict]:
        """
        Get a page of notifications, newest first.

        Each row carries 'item_name', the current name of the subject item,
        or None when the item has been deleted.

        Args:
            filters: Optional 'is_read' (bool)
            page: 1-based page number
            limit: Page size
        """
        filters = filters or {}
        item_name = case(
            (Notification.item_type == ItemType.CHEMICAL.value, Chemical.name),
            (Notification.item_type == ItemType.EQUIPMENT.value, Equipment.name),
            else_=None
        ).label('item_name')

        with self.session_scope() as session:
            query = (
                session.query(Notification, item_name)
                .outerjoin(Chemical, and_(
                    Notification.item_type == ItemType.CHEMICAL.value,
                    Notification.item_id == Chemical.id
                ))
                .outerjoin(Equipment, and_(
                    Notification.item_type == ItemType.EQUIPMENT.value,
                    Notification.item_id == Equipment.id
                ))
            )
            if filters.get('is_read') is not None:
                query = query.filter(Notification.is_read == bool(filters['is_read']))

            rows = (
                query.order_by(desc(Notification.created_at), desc(Notification.id))
                .offset(page_offset(page, limit))
                .limit(limit)
                .all()
            )
            return [self._notification_to_dict(n, name) for n, name in rows]

    def count_notifications(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count notifications matching the same filters as list_notifications()."""
        filters = filters or {}
        with self.session_scope() as session:
            query = session.query(func.count(Notification.id))
            if filters.get('is_read') is not None:
                query = query.filter(Notification.is_read == bool(filters['is_read']))
            return query.scalar() or 0

    def unread_count(self) -> int:
        """Number of unread notifications (for badge counts)."""
        return self.count_notifications({'is_read': False})

    def mark_read(self, notification_id: int) -> None:
        with self.session_scope() as session:
            notification = session.get(Notification, notification_id)
            if notification is None:
                raise NotFoundError('notification', notification_id)
            notification.is_read = True

    def mark_all_read(self) -> int:
        """Mark every unread notification as read. Returns the number updated."""
        with self.session_scope() as session:
            result = session.execute(
                update(Notification)
                .where(Notification.is_read == False)  # noqa: E712
                .values(is_read=True)
            )
            return result.rowcount or 0

    def delete_notification(self, notification_id: int) -> None:
        with self.session_scope() as session:
            notification = session.get(Notification, notification_id)
            if notification is None:
                raise NotFoundError('notification', notification_id)
            session.delete(notification)

    def _notification_to_dict(self, notification: Notification, item_name: Optional[str] = None) -> Dict:
        """Convert Notification model to dictionary."""
        return {
            'id': notification.id,
            'type': notification.type,
            'title': notification.title,
            'message': notification.message,
            'item_type': notification.item_type,
            'item_id': notification.item_id,
            'item_name': item_name,
            'is_read': notification.is_read,
            'created_at': isoformat(notification.created_at),
        }


@dataclass
class SweepResult:
    """Outcome of one sweep: notifications created per type and failed scans."""
    generated: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.generated.values())

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {'generated': dict(self.generated), 'total': self.total, 'errors': dict(self.errors)}


class NotificationGenerator:
    """
    Materializes alert notifications from inventory state.

    Never modifies chemical or equipment rows. Each notification is committed
    on its own, so an interrupted sweep leaves the already-inserted alerts in
    place and the next sweep fills in the rest.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope for a series of operations."""
        with get_session() as session:
            yield session

    # ==================== Sweep ====================

    def run_sweep(self, today: Optional[date] = None) -> SweepResult:
        """
        Run all three scans.

        A failure in one scan is logged and recorded in the result; the
        other scans still run.

        Args:
            today: Reference date for the date windows (defaults to today)

        Raises:
            SweepInProgressError: Another runner holds the sweep lease.
        """
        today = today or date.today()
        holder = None
        if self.settings.sweep_lease_enabled:
            holder = _lease_holder_id()
            if not self.acquire_lease(holder):
                raise SweepInProgressError("Another notification sweep is already running")

        logger.info(f"Running notification sweep for {today.isoformat()}")
        result = SweepResult()
        scans = (
            (NotificationType.LOW_STOCK, self.check_low_stock),
            (NotificationType.EXPIRATION, self.check_expiring_chemicals),
            (NotificationType.MAINTENANCE, self.check_equipment_maintenance),
        )
        try:
            for notification_type, scan in scans:
                try:
                    result.generated[notification_type.value] = scan(today)
                except Exception as e:
                    logger.exception(f"Error checking {notification_type.value} notifications")
                    result.generated[notification_type.value] = 0
                    result.errors[notification_type.value] = str(e)
        finally:
            if holder is not None:
                self.release_lease(holder)

        logger.info(f"Notification sweep completed: {result.total} generated, {len(result.errors)} failed scans")
        return result

    # ==================== Scans ====================

    def check_low_stock(self, today: Optional[date] = None) -> int:
        """Create low_stock notifications. Returns the number created."""
        ratio = self.settings.low_stock_ratio
        with self.session_scope() as session:
            chemicals = session.query(Chemical).filter(
                Chemical.current_quantity <= Chemical.initial_quantity * ratio,
                ~self._unread_exists(NotificationType.LOW_STOCK, ItemType.CHEMICAL, Chemical.id)
            ).order_by(Chemical.id).all()
            pending = [
                (
                    chemical.id,
                    'Low Stock Alert',
                    f'Chemical "{chemical.name}" (Batch: {chemical.batch_number}) is running low. '
                    f'Current quantity: {chemical.current_quantity}'
                )
                for chemical in chemicals
            ]

        created = self._insert_all(NotificationType.LOW_STOCK, ItemType.CHEMICAL, pending)
        logger.info(f"Generated {created} low stock notifications")
        return created

    def check_expiring_chemicals(self, today: Optional[date] = None) -> int:
        """Create expiration notifications for chemicals expiring inside the window. Already-expired items are skipped."""
        today = today or date.today()
        window_end = add_months(today, self.settings.expiration_window_months)
        with self.session_scope() as session:
            chemicals = session.query(Chemical).filter(
                Chemical.expiration_date <= window_end,
                Chemical.expiration_date > today,
                ~self._unread_exists(NotificationType.EXPIRATION, ItemType.CHEMICAL, Chemical.id)
            ).order_by(Chemical.expiration_date, Chemical.id).all()
            pending = [
                (
                    chemical.id,
                    'Expiration Alert',
                    f'Chemical "{chemical.name}" (Batch: {chemical.batch_number}) '
                    f'will expire on {chemical.expiration_date.isoformat()}'
                )
                for chemical in chemicals
            ]

        created = self._insert_all(NotificationType.EXPIRATION, ItemType.CHEMICAL, pending)
        logger.info(f"Generated {created} expiration notifications")
        return created

    def check_equipment_maintenance(self, today: Optional[date] = None) -> int:
        """Create maintenance notifications for equipment due inside the window."""
        today = today or date.today()
        window_end = today + timedelta(days=self.settings.maintenance_window_days)
        with self.session_scope() as session:
            items = session.query(Equipment).filter(
                Equipment.next_maintenance <= window_end,
                Equipment.next_maintenance > today,
                ~self._unread_exists(NotificationType.MAINTENANCE, ItemType.EQUIPMENT, Equipment.id)
            ).order_by(Equipment.next_maintenance, Equipment.id).all()
            pending = [
                (
                    item.id,
                    'Maintenance Alert',
                    f'Equipment "{item.name}" (ID: {item.serial_id}) '
                    f'requires maintenance by {item.next_maintenance.isoformat()}'
                )
                for item in items
            ]

        created = self._insert_all(NotificationType.MAINTENANCE, ItemType.EQUIPMENT, pending)
        logger.info(f"Generated {created} maintenance notifications")
        return created

    def _unread_exists(self, notification_type: NotificationType, item_type: ItemType, item_id_column):
        """Correlated EXISTS for an unread notification of this type about the outer row."""
        return exists().where(
            Notification.type == notification_type.value,
            Notification.item_type == item_type.value,
            Notification.item_id == item_id_column,
            Notification.is_read == False,  # noqa: E712
        )

    def _insert_all(
        self,
        notification_type: NotificationType,
        item_type: ItemType,
        pending: List[Tuple[int, str, str]]
    ) -> int:
        created = 0
        for item_id, title, message in pending:
            with self.session_scope() as session:
                session.add(Notification(
                    type=notification_type.value,
                    title=title,
                    message=message,
                    item_type=item_type.value,
                    item_id=item_id,
                ))
            created += 1
        return created

    # ==================== Lease ====================

    def acquire_lease(self, holder: str, now: Optional[datetime] = None) -> bool:
        """
        Try to take the sweep lease.

        Succeeds when no lease row exists or the existing one has expired.
        Returns False if someone else holds an unexpired lease.
        """
        now = now or datetime.utcnow()
        expires_at = now + timedelta(minutes=self.settings.sweep_lease_ttl_minutes)
        try:
            with self.session_scope() as session:
                taken_over = session.execute(
                    update(SweepLease)
                    .where(SweepLease.name == SWEEP_LEASE_NAME, SweepLease.expires_at <= now)
                    .values(holder=holder, acquired_at=now, expires_at=expires_at)
                    .execution_options(synchronize_session=False)
                )
                if taken_over.rowcount == 1:
                    return True
                if session.get(SweepLease, SWEEP_LEASE_NAME) is not None:
                    return False
                session.add(SweepLease(
                    name=SWEEP_LEASE_NAME,
                    holder=holder,
                    acquired_at=now,
                    expires_at=expires_at,
                ))
            return True
        except IntegrityError:
            # Lost the insert race to another runner
            return False

    def release_lease(self, holder: str) -> None:
        """Release the sweep lease if this holder still owns it."""
        try:
            with self.session_scope() as session:
                session.execute(
                    delete(SweepLease)
                    .where(SweepLease.name == SWEEP_LEASE_NAME, SweepLease.holder == holder)
                    .execution_options(synchronize_session=False)
                )
        except Exception:
            logger.exception(f"Error releasing sweep lease held by {holder}")


def _lease_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


# Singleton instances for easy import
_notification_service: Optional[NotificationService] = None
_notification_generator: Optional[NotificationGenerator] = None


def get_notification_service() -> NotificationService:
    """Get the singleton notification service instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service


def get_notification_generator() -> NotificationGenerator:
    """Get the singleton notification generator instance."""
    global _notification_generator
    if _notification_generator is None:
        _notification_generator = NotificationGenerator()
    return _notification_generator


def run_notification_sweep(today: Optional[date] = None) -> SweepResult:
    """Run one sweep with the default generator. Entry point for schedulers."""
    return get_notification_generator().run_sweep(today)
