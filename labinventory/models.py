"""
Lab Inventory Models
====================
SQLAlchemy ORM models for the laboratory inventory: chemicals, equipment,
usage/maintenance logs, users, notifications and the audit trail.
"""

import enum
import datetime as dt
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy import (
    Integer, String, Boolean, Text, DateTime, Date,
    ForeignKey, JSON, Index
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# ============================================================
# ENUMERATIONS - stored as their string values
# ============================================================

class SafetyClass(str, enum.Enum):
    SAFE = 'safe'
    TOXIC = 'toxic'
    CORROSIVE = 'corrosive'
    REACTIVE = 'reactive'
    FLAMMABLE = 'flammable'


class EquipmentStatus(str, enum.Enum):
    AVAILABLE = 'Available'
    BROKEN = 'Broken'
    UNDER_MAINTENANCE = 'Under Maintenance'


class EquipmentCondition(str, enum.Enum):
    GOOD = 'Good'
    NEEDS_REPAIR = 'Needs Repair'
    BROKEN = 'Broken'


class UserRole(str, enum.Enum):
    ADMIN = 'admin'
    USER = 'user'


class NotificationType(str, enum.Enum):
    LOW_STOCK = 'low_stock'
    EXPIRATION = 'expiration'
    MAINTENANCE = 'maintenance'


class ItemType(str, enum.Enum):
    """Kind of inventory item a notification points at."""
    CHEMICAL = 'chemical'
    EQUIPMENT = 'equipment'


class AuditType(str, enum.Enum):
    CHEMICAL = 'chemical'
    EQUIPMENT = 'equipment'
    USER = 'user'


class AuditAction(str, enum.Enum):
    ADD = 'add'
    UPDATE = 'update'
    DELETE = 'delete'
    USAGE = 'usage'
    MAINTENANCE = 'maintenance'


def enum_value(value):
    """Return the stored string for an enum member, or the value unchanged."""
    if isinstance(value, enum.Enum):
        return value.value
    return value


# ============================================================
# USERS
# ============================================================

class User(Base):
    """
    User accounts. Created on first Google login or by an admin.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    google_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER.value)  # 'admin', 'user'
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    assigned_equipment: Mapped[List["Equipment"]] = relationship("Equipment", back_populates="assigned_user")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


# ============================================================
# CHEMICALS
# ============================================================

class Chemical(Base):
    """
    Chemical stock item. initial_quantity is fixed at creation;
    current_quantity is decremented by each usage log.
    """
    __tablename__ = "chemicals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    volume: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    initial_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_of_arrival: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    safety_class: Mapped[str] = mapped_column(String(20), nullable=False, default=SafetyClass.SAFE.value)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ghs_symbols: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)  # e.g. ["GHS02", "GHS07"]
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    usage_logs: Mapped[List["ChemicalUsageLog"]] = relationship(
        "ChemicalUsageLog", back_populates="chemical", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_chemicals_name', 'name'),
        Index('idx_chemicals_expiration', 'expiration_date'),
    )

    def __repr__(self):
        return f"<Chemical(id={self.id}, name='{self.name}', batch='{self.batch_number}')>"


class ChemicalUsageLog(Base):
    """A single consumption event against a chemical."""
    __tablename__ = "chemical_usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chemical_id: Mapped[int] = mapped_column(Integer, ForeignKey('chemicals.id'), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    opened: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    chemical: Mapped["Chemical"] = relationship("Chemical", back_populates="usage_logs")
    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index('idx_usage_logs_chemical', 'chemical_id'),
    )

    def __repr__(self):
        return f"<ChemicalUsageLog(id={self.id}, chemical_id={self.chemical_id}, qty={self.quantity})>"


# ============================================================
# EQUIPMENT
# ============================================================

class Equipment(Base):
    """
    Laboratory equipment with maintenance scheduling fields.
    next_maintenance defaults to six months after creation.
    """
    __tablename__ = "equipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    serial_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), default=EquipmentStatus.AVAILABLE.value)  # 'Available', 'Broken', 'Under Maintenance'
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    purchase_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    warranty_expiration: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    condition: Mapped[str] = mapped_column(String(50), default=EquipmentCondition.GOOD.value)  # 'Good', 'Needs Repair', 'Broken'
    last_maintenance: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    next_maintenance: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    assigned_user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    assigned_user: Mapped[Optional["User"]] = relationship("User", back_populates="assigned_equipment")
    maintenance_logs: Mapped[List["EquipmentMaintenanceLog"]] = relationship(
        "EquipmentMaintenanceLog", back_populates="equipment", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_equipment_status', 'status'),
        Index('idx_equipment_next_maintenance', 'next_maintenance'),
    )

    def __repr__(self):
        return f"<Equipment(id={self.id}, name='{self.name}', serial='{self.serial_id}')>"


class EquipmentMaintenanceLog(Base):
    """Maintenance (or usage) event recorded against equipment."""
    __tablename__ = "equipment_maintenance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    equipment_id: Mapped[int] = mapped_column(Integer, ForeignKey('equipment.id'), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)  # Free-text label, e.g. 'Calibration'
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    equipment: Mapped["Equipment"] = relationship("Equipment", back_populates="maintenance_logs")
    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index('idx_maintenance_logs_equipment', 'equipment_id'),
    )

    def __repr__(self):
        return f"<EquipmentMaintenanceLog(id={self.id}, equipment_id={self.equipment_id}, action='{self.action}')>"


# ============================================================
# NOTIFICATIONS
# ============================================================

class Notification(Base):
    """
    Alert shown to users. item_type/item_id is a weak reference to the
    subject item and may dangle after the item is deleted.

    Only is_read changes after creation.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # 'low_stock', 'expiration', 'maintenance'
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    item_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # 'chemical', 'equipment'
    item_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_notifications_subject', 'type', 'item_type', 'item_id', 'is_read'),
        Index('idx_notifications_created', 'created_at'),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, type='{self.type}', item='{self.item_type}:{self.item_id}')>"


class SweepLease(Base):
    """
    Mutual-exclusion row for the notification sweep. A lease is free when
    no row exists or the existing row has expired.
    """
    __tablename__ = "sweep_leases"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    holder: Mapped[str] = mapped_column(String(255), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self):
        return f"<SweepLease(name='{self.name}', holder='{self.holder}', expires_at={self.expires_at})>"


# ============================================================
# AUDIT LOG
# ============================================================

class AuditLog(Base):
    """
    Append-only record of a user-attributed mutation.

    item_name is a snapshot taken at write time so history survives
    deletion of the item. Rows are never updated or deleted
    (see labinventory.immutability).
    """
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # 'chemical', 'equipment', 'user', ...
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # 'add', 'update', 'delete', 'usage', ...
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index('idx_audit_type_action', 'type', 'action'),
        Index('idx_audit_time', 'timestamp'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, type='{self.type}', action='{self.action}', item='{self.item_name}')>"
