# Lab Inventory
# =============
# Laboratory inventory backend:
# - Chemicals with usage logs and stock tracking
# - Equipment with maintenance logs and schedules
# - Low stock, expiration and maintenance notifications
# - Append-only audit trail of administrative changes

__version__ = "1.0.0"

from labinventory.models import (
    Base,
    User,
    Chemical,
    ChemicalUsageLog,
    Equipment,
    EquipmentMaintenanceLog,
    Notification,
    SweepLease,
    AuditLog,
    SafetyClass,
    EquipmentStatus,
    EquipmentCondition,
    UserRole,
    NotificationType,
    ItemType,
    AuditType,
    AuditAction,
)

from labinventory.session import (
    DatabaseManager,
    get_db,
    init_db,
    get_session,
    close_db,
)

from labinventory.exceptions import (
    InventoryError,
    NotFoundError,
    ValidationError,
    PermissionDeniedError,
    StoreError,
    ImmutabilityViolationError,
    SweepInProgressError,
)

from labinventory.audit_service import AuditService, get_audit_service, record_audit
from labinventory.notification_service import (
    NotificationService,
    NotificationGenerator,
    SweepResult,
    get_notification_service,
    get_notification_generator,
    run_notification_sweep,
)
from labinventory.inventory_service import InventoryService, get_inventory_service

__all__ = [
    # Models
    'Base', 'User', 'Chemical', 'ChemicalUsageLog', 'Equipment',
    'EquipmentMaintenanceLog', 'Notification', 'SweepLease', 'AuditLog',
    # Enums
    'SafetyClass', 'EquipmentStatus', 'EquipmentCondition', 'UserRole',
    'NotificationType', 'ItemType', 'AuditType', 'AuditAction',
    # Session
    'DatabaseManager', 'get_db', 'init_db', 'get_session', 'close_db',
    # Exceptions
    'InventoryError', 'NotFoundError', 'ValidationError', 'PermissionDeniedError',
    'StoreError', 'ImmutabilityViolationError', 'SweepInProgressError',
    # Services
    'AuditService', 'get_audit_service', 'record_audit',
    'NotificationService', 'NotificationGenerator', 'SweepResult',
    'get_notification_service', 'get_notification_generator', 'run_notification_sweep',
    'InventoryService', 'get_inventory_service',
]
