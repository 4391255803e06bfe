"""
Lab Inventory Service
=====================
CRUD for chemicals, equipment and users, plus usage and maintenance logs.

Every mutation commits first and then appends an audit entry. Audit
recording is best-effort and never undoes the mutation. Database failures on
the mutation itself are raised as StoreError.

Maintenance log entries are audited with action "maintenance"; the
free-text label (e.g. "Calibration") is kept in details["action"], so filter
the audit trail on action="maintenance" to find them.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Optional, List, Dict, Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from labinventory.audit_service import get_audit_service
from labinventory.config import Settings, get_settings
from labinventory.exceptions import (
    NotFoundError, ValidationError, PermissionDeniedError, StoreError
)
from labinventory.models import (
    Chemical, ChemicalUsageLog, Equipment, EquipmentMaintenanceLog, User,
    AuditType, AuditAction, UserRole
)
from labinventory.session import get_session
from labinventory.utils import add_months, isoformat
from labinventory.validators import (
    validate_chemical, validate_equipment, validate_user,
    validate_usage, validate_maintenance
)

logger = logging.getLogger(__name__)


class InventoryService:
    """Service layer for chemicals, equipment and users."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @contextmanager
    def session_scope(self):
        """Transactional scope; database errors surface as StoreError."""
        try:
            with get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error: {e}")
            raise StoreError(f"Database error: {e.__class__.__name__}") from e

    def _audit(self, type: AuditType, action: AuditAction, item_name: str,
               user_id: int, details: Dict[str, Any]) -> None:
        get_audit_service().record_audit(type, action, item_name, user_id, details)

    # ==================== Chemicals ====================

    def list_chemicals(self, search: Optional[str] = None) -> List[Dict]:
        """All chemicals ordered by name, each with its usage_count."""
        usage_count = (
            select(func.count(ChemicalUsageLog.id))
            .where(ChemicalUsageLog.chemical_id == Chemical.id)
            .correlate(Chemical)
            .scalar_subquery()
        )
        with self.session_scope() as session:
            query = session.query(Chemical, usage_count.label('usage_count'))
            if search:
                search_term = f"%{search}%"
                query = query.filter(
                    or_(
                        Chemical.name.ilike(search_term),
                        Chemical.batch_number.ilike(search_term),
                        Chemical.brand.ilike(search_term)
                    )
                )
            rows = query.order_by(Chemical.name, Chemical.id).all()
            return [
                dict(self._chemical_to_dict(chemical), usage_count=count or 0)
                for chemical, count in rows
            ]

    def get_chemical(self, chemical_id: int) -> Dict:
        """Get a chemical with its usage log (newest first)."""
        with self.session_scope() as session:
            chemical = self._get_or_404(session, Chemical, chemical_id, 'chemical')
            result = self._chemical_to_dict(chemical)
            result['usage_log'] = self._usage_logs(session, chemical_id)
            return result

    def create_chemical(self, data: Dict[str, Any], user_id: int) -> Dict:
        data = validate_chemical(data)
        if data.get('current_quantity') is None:
            data['current_quantity'] = data['initial_quantity']

        with self.session_scope() as session:
            chemical = Chemical(**data)
            session.add(chemical)
            session.flush()
            result = self._chemical_to_dict(chemical)

        logger.info(f"Created chemical {result['id']} '{result['name']}'")
        self._audit(AuditType.CHEMICAL, AuditAction.ADD, result['name'], user_id, {
            'batch_number': result['batch_number'],
            'quantity': result['initial_quantity'],
        })
        return result

    def update_chemical(self, chemical_id: int, data: Dict[str, Any], user_id: int) -> Dict:
        data = validate_chemical(data, partial=True)
        with self.session_scope() as session:
            chemical = self._get_or_404(session, Chemical, chemical_id, 'chemical')
            for field, value in data.items():
                setattr(chemical, field, value)
            session.flush()
            result = self._chemical_to_dict(chemical)

        self._audit(AuditType.CHEMICAL, AuditAction.UPDATE, result['name'], user_id, {
            'batch_number': result['batch_number'],
            'quantity': result['current_quantity'],
        })
        return result

    def delete_chemical(self, chemical_id: int, user_id: int) -> None:
        """Delete a chemical and its usage logs. Notifications about it are left dangling."""
        with self.session_scope() as session:
            chemical = self._get_or_404(session, Chemical, chemical_id, 'chemical')
            name, batch_number = chemical.name, chemical.batch_number
            session.delete(chemical)

        logger.info(f"Deleted chemical {chemical_id} '{name}'")
        self._audit(AuditType.CHEMICAL, AuditAction.DELETE, name, user_id, {
            'batch_number': batch_number,
        })

    def log_chemical_usage(self, chemical_id: int, user_id: int, data: Dict[str, Any]) -> Dict:
        """
        Record consumption of a chemical.

        The usage row and the decrement of current_quantity are written in
        one transaction. Consuming more than is in stock drives the quantity
        negative unless enforce_non_negative_stock is set.

        Returns:
            The usage log entry, with the chemical's new 'current_quantity'.
        """
        data = validate_usage(data)
        quantity = data['quantity']

        with self.session_scope() as session:
            chemical = session.get(Chemical, chemical_id, with_for_update=True)
            if chemical is None:
                raise NotFoundError('chemical', chemical_id)
            if self.settings.enforce_non_negative_stock and quantity > chemical.current_quantity:
                raise ValidationError(
                    f"Cannot use {quantity}; only {chemical.current_quantity} in stock",
                    details={'quantity': quantity, 'current_quantity': chemical.current_quantity}
                )

            log = ChemicalUsageLog(chemical_id=chemical_id, user_id=user_id, **data)
            session.add(log)
            chemical.current_quantity = chemical.current_quantity - quantity
            session.flush()

            name = chemical.name
            result = self._usage_log_to_dict(log)
            result['current_quantity'] = chemical.current_quantity

        if result['current_quantity'] < 0:
            logger.warning(f"Chemical {chemical_id} '{name}' stock is negative: {result['current_quantity']}")

        self._audit(AuditType.CHEMICAL, AuditAction.USAGE, name, user_id, {
            'quantity': quantity,
            'location': data.get('location'),
            'date': isoformat(data['date']),
        })
        return result

    def get_usage_logs(self, chemical_id: int) -> List[Dict]:
        with self.session_scope() as session:
            self._get_or_404(session, Chemical, chemical_id, 'chemical')
            return self._usage_logs(session, chemical_id)

    def _usage_logs(self, session, chemical_id: int) -> List[Dict]:
        rows = (
            session.query(ChemicalUsageLog, User.name)
            .outerjoin(User, ChemicalUsageLog.user_id == User.id)
            .filter(ChemicalUsageLog.chemical_id == chemical_id)
            .order_by(ChemicalUsageLog.date.desc(), ChemicalUsageLog.id.desc())
            .all()
        )
        return [dict(self._usage_log_to_dict(log), user_name=user_name) for log, user_name in rows]

    def _chemical_to_dict(self, chemical: Chemical) -> Dict:
        """Convert Chemical model to dictionary."""
        return {
            'id': chemical.id,
            'name': chemical.name,
            'batch_number': chemical.batch_number,
            'brand': chemical.brand,
            'volume': chemical.volume,
            'initial_quantity': chemical.initial_quantity,
            'current_quantity': chemical.current_quantity,
            'expiration_date': isoformat(chemical.expiration_date),
            'date_of_arrival': isoformat(chemical.date_of_arrival),
            'safety_class': chemical.safety_class,
            'location': chemical.location,
            'ghs_symbols': chemical.ghs_symbols or [],
            'created_at': isoformat(chemical.created_at),
            'updated_at': isoformat(chemical.updated_at),
        }

    def _usage_log_to_dict(self, log: ChemicalUsageLog) -> Dict:
        return {
            'id': log.id,
            'chemical_id': log.chemical_id,
            'user_id': log.user_id,
            'date': isoformat(log.date),
            'location': log.location,
            'quantity': log.quantity,
            'notes': log.notes,
            'opened': log.opened,
            'created_at': isoformat(log.created_at),
        }

    # ==================== Equipment ====================

    def list_equipment(self) -> List[Dict]:
        """All equipment ordered by name, with assigned_user_name and maintenance_count."""
        maintenance_count = (
            select(func.count(EquipmentMaintenanceLog.id))
            .where(EquipmentMaintenanceLog.equipment_id == Equipment.id)
            .correlate(Equipment)
            .scalar_subquery()
        )
        with self.session_scope() as session:
            rows = (
                session.query(Equipment, User.name, maintenance_count.label('maintenance_count'))
                .outerjoin(User, Equipment.assigned_user_id == User.id)
                .order_by(Equipment.name, Equipment.id)
                .all()
            )
            return [
                dict(self._equipment_to_dict(item), assigned_user_name=user_name, maintenance_count=count or 0)
                for item, user_name, count in rows
            ]

    def get_equipment(self, equipment_id: int) -> Dict:
        """Get equipment with its maintenance log (newest first)."""
        with self.session_scope() as session:
            item = self._get_or_404(session, Equipment, equipment_id, 'equipment')
            result = self._equipment_to_dict(item)
            result['assigned_user_name'] = item.assigned_user.name if item.assigned_user else None
            result['maintenance_log'] = self._maintenance_logs(session, equipment_id)
            return result

    def create_equipment(self, data: Dict[str, Any], user_id: int) -> Dict:
        """
        Create equipment. last_maintenance defaults to today and
        next_maintenance to today plus the maintenance interval.
        """
        data = validate_equipment(data)
        today = date.today()
        if data.get('last_maintenance') is None:
            data['last_maintenance'] = today
        if data.get('next_maintenance') is None:
            data['next_maintenance'] = add_months(today, self.settings.maintenance_interval_months)

        with self.session_scope() as session:
            self._check_serial_unique(session, data['serial_id'])
            if data.get('assigned_user_id') is not None:
                self._get_or_404(session, User, data['assigned_user_id'], 'user')
            item = Equipment(**data)
            session.add(item)
            session.flush()
            result = self._equipment_to_dict(item)

        logger.info(f"Created equipment {result['id']} '{result['name']}'")
        self._audit(AuditType.EQUIPMENT, AuditAction.ADD, result['name'], user_id, {
            'serial_id': result['serial_id'],
            'model': result['model'],
            'status': result['status'],
        })
        return result

    def update_equipment(self, equipment_id: int, data: Dict[str, Any], user_id: int) -> Dict:
        data = validate_equipment(data, partial=True)
        with self.session_scope() as session:
            item = self._get_or_404(session, Equipment, equipment_id, 'equipment')
            if data.get('serial_id') and data['serial_id'] != item.serial_id:
                self._check_serial_unique(session, data['serial_id'])
            if data.get('assigned_user_id') is not None:
                self._get_or_404(session, User, data['assigned_user_id'], 'user')
            for field, value in data.items():
                setattr(item, field, value)
            session.flush()
            result = self._equipment_to_dict(item)

        self._audit(AuditType.EQUIPMENT, AuditAction.UPDATE, result['name'], user_id, {
            'serial_id': result['serial_id'],
            'status': result['status'],
        })
        return result

    def delete_equipment(self, equipment_id: int, user_id: int) -> None:
        with self.session_scope() as session:
            item = self._get_or_404(session, Equipment, equipment_id, 'equipment')
            name, serial_id = item.name, item.serial_id
            session.delete(item)

        logger.info(f"Deleted equipment {equipment_id} '{name}'")
        self._audit(AuditType.EQUIPMENT, AuditAction.DELETE, name, user_id, {
            'serial_id': serial_id,
        })

    def add_maintenance_log(self, equipment_id: int, user_id: int, data: Dict[str, Any]) -> Dict:
        """Record a maintenance event. The equipment's maintenance dates are not changed.

        The audit entry's action is always "maintenance"; the event label goes
        into its details.
        """
        data = validate_maintenance(data)
        with self.session_scope() as session:
            item = self._get_or_404(session, Equipment, equipment_id, 'equipment')
            log = EquipmentMaintenanceLog(equipment_id=equipment_id, user_id=user_id, **data)
            session.add(log)
            session.flush()
            name = item.name
            result = self._maintenance_log_to_dict(log)

        self._audit(AuditType.EQUIPMENT, AuditAction.MAINTENANCE, name, user_id, {
            'action': result['action'],
            'date': result['date'],
            'notes': result['notes'],
        })
        return result

    def get_maintenance_logs(self, equipment_id: int) -> List[Dict]:
        with self.session_scope() as session:
            self._get_or_404(session, Equipment, equipment_id, 'equipment')
            return self._maintenance_logs(session, equipment_id)

    def _maintenance_logs(self, session, equipment_id: int) -> List[Dict]:
        rows = (
            session.query(EquipmentMaintenanceLog, User.name)
            .outerjoin(User, EquipmentMaintenanceLog.user_id == User.id)
            .filter(EquipmentMaintenanceLog.equipment_id == equipment_id)
            .order_by(EquipmentMaintenanceLog.date.desc(), EquipmentMaintenanceLog.id.desc())
            .all()
        )
        return [dict(self._maintenance_log_to_dict(log), user_name=user_name) for log, user_name in rows]

    def _check_serial_unique(self, session, serial_id: str) -> None:
        if session.query(Equipment.id).filter(Equipment.serial_id == serial_id).first():
            raise ValidationError(
                f"Equipment with serial ID '{serial_id}' already exists",
                details={'field': 'serial_id'}
            )

    def _equipment_to_dict(self, item: Equipment) -> Dict:
        """Convert Equipment model to dictionary."""
        return {
            'id': item.id,
            'name': item.name,
            'model': item.model,
            'serial_id': item.serial_id,
            'status': item.status,
            'location': item.location,
            'purchase_date': isoformat(item.purchase_date),
            'warranty_expiration': isoformat(item.warranty_expiration),
            'condition': item.condition,
            'last_maintenance': isoformat(item.last_maintenance),
            'next_maintenance': isoformat(item.next_maintenance),
            'assigned_user_id': item.assigned_user_id,
            'created_at': isoformat(item.created_at),
            'updated_at': isoformat(item.updated_at),
        }

    def _maintenance_log_to_dict(self, log: EquipmentMaintenanceLog) -> Dict:
        return {
            'id': log.id,
            'equipment_id': log.equipment_id,
            'user_id': log.user_id,
            'date': isoformat(log.date),
            'action': log.action,
            'notes': log.notes or '',
            'created_at': isoformat(log.created_at),
        }

    # ==================== Users ====================

    def list_users(self) -> List[Dict]:
        with self.session_scope() as session:
            users = session.query(User).order_by(User.name, User.id).all()
            return [self._user_to_dict(u) for u in users]

    def get_user(self, user_id: int) -> Dict:
        with self.session_scope() as session:
            return self._user_to_dict(self._get_or_404(session, User, user_id, 'user'))

    def create_user(self, data: Dict[str, Any], acting_user_id: int) -> Dict:
        data = validate_user(data)
        data.setdefault('role', UserRole.USER.value)
        with self.session_scope() as session:
            self._check_email_unique(session, data['email'])
            user = User(**data)
            session.add(user)
            session.flush()
            result = self._user_to_dict(user)

        logger.info(f"Created user {result['id']} <{result['email']}>")
        self._audit(AuditType.USER, AuditAction.ADD, result['name'], acting_user_id, {
            'email': result['email'],
            'role': result['role'],
        })
        return result

    def update_user(self, user_id: int, data: Dict[str, Any], acting_user_id: int) -> Dict:
        data = validate_user(data, partial=True)
        with self.session_scope() as session:
            user = self._get_or_404(session, User, user_id, 'user')
            if data.get('email') and data['email'] != user.email:
                self._check_email_unique(session, data['email'])
            for field, value in data.items():
                setattr(user, field, value)
            session.flush()
            result = self._user_to_dict(user)

        self._audit(AuditType.USER, AuditAction.UPDATE, result['name'], acting_user_id, {
            'email': result['email'],
            'role': result['role'],
        })
        return result

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        """
        Delete a user account.

        Raises:
            PermissionDeniedError: A user may not delete their own account.
            StoreError: The user is still referenced by logs or audit entries.
        """
        if user_id == acting_user_id:
            raise PermissionDeniedError("You cannot delete your own account")

        with self.session_scope() as session:
            user = self._get_or_404(session, User, user_id, 'user')
            name, email = user.name, user.email
            session.delete(user)

        logger.info(f"Deleted user {user_id} <{email}>")
        self._audit(AuditType.USER, AuditAction.DELETE, name, acting_user_id, {
            'email': email,
        })

    def get_or_create_google_user(self, google_id: str, email: str, name: str) -> Dict:
        """
        Resolve the local account for a Google identity.

        Looks up by google_id, then by email (linking the google_id to the
        existing account), and otherwise creates a new account with role 'user'.
        """
        with self.session_scope() as session:
            user = session.query(User).filter(User.google_id == google_id).first()
            if user is None:
                user = session.query(User).filter(User.email == email).first()
                if user is not None:
                    logger.info(f"Linking Google account to existing user {user.id} <{email}>")
                    user.google_id = google_id
                else:
                    user = User(google_id=google_id, email=email, name=name or email,
                                role=UserRole.USER.value)
                    session.add(user)
                    session.flush()
                    logger.info(f"Created user {user.id} <{email}> from Google login")
            return self._user_to_dict(user)

    def _check_email_unique(self, session, email: str) -> None:
        if session.query(User.id).filter(User.email == email).first():
            raise ValidationError(
                f"A user with email '{email}' already exists",
                details={'field': 'email'}
            )

    def _user_to_dict(self, user: User) -> Dict:
        """Convert User model to dictionary."""
        return {
            'id': user.id,
            'google_id': user.google_id,
            'email': user.email,
            'name': user.name,
            'role': user.role,
            'created_at': isoformat(user.created_at),
            'updated_at': isoformat(user.updated_at),
        }

    # ==================== Helpers ====================

    def _get_or_404(self, session, model, entity_id: int, entity_type: str):
        instance = session.get(model, entity_id)
        if instance is None:
            raise NotFoundError(entity_type, entity_id)
        return instance


_inventory_service: Optional[InventoryService] = None


def get_inventory_service() -> InventoryService:
    """Get the singleton inventory service instance."""
    global _inventory_service
    if _inventory_service is None:
        _inventory_service = InventoryService()
    return _inventory_service
