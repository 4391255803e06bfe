"""
Validators
==========
Input validation for chemical, equipment, user, usage and maintenance payloads.

Each validate_* function raises ValidationError on the first problem found and
returns a cleaned copy of the payload (dates parsed, enum values checked,
quantities coerced to int). Unknown keys are dropped.
"""

from typing import Any, Dict, Iterable, List, Optional

from labinventory.exceptions import ValidationError
from labinventory.models import (
    SafetyClass, EquipmentStatus, EquipmentCondition, UserRole
)
from labinventory.utils import parse_date


# Valid chemical safety classes
SAFETY_CLASSES = [c.value for c in SafetyClass]

# Valid equipment statuses
EQUIPMENT_STATUSES = [s.value for s in EquipmentStatus]

# Valid equipment conditions
EQUIPMENT_CONDITIONS = [c.value for c in EquipmentCondition]

# Valid user roles
USER_ROLES = [r.value for r in UserRole]

CHEMICAL_FIELDS = [
    'name', 'batch_number', 'brand', 'volume', 'initial_quantity', 'current_quantity',
    'expiration_date', 'date_of_arrival', 'safety_class', 'location', 'ghs_symbols',
]
EQUIPMENT_FIELDS = [
    'name', 'model', 'serial_id', 'status', 'location', 'purchase_date',
    'warranty_expiration', 'condition', 'last_maintenance', 'next_maintenance',
    'assigned_user_id',
]
USER_FIELDS = ['name', 'email', 'role', 'google_id']

_CHEMICAL_DATES = ('expiration_date', 'date_of_arrival')
_EQUIPMENT_DATES = ('purchase_date', 'warranty_expiration', 'last_maintenance', 'next_maintenance')


def _require(data: Dict[str, Any], fields: Iterable[str]) -> None:
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={'missing': missing}
        )


def _check_choice(data: Dict[str, Any], field: str, choices: List[str]) -> None:
    if field in data and data[field] is not None and data[field] not in choices:
        raise ValidationError(
            f"Invalid {field} '{data[field]}'. Must be one of: {', '.join(choices)}",
            details={'field': field, 'allowed': choices}
        )


def _to_int(data: Dict[str, Any], field: str, minimum: Optional[int] = None) -> None:
    if field not in data or data[field] is None:
        return
    value = data[field]
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={'field': field})
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={'field': field})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", details={'field': field})
    data[field] = value


def _to_dates(data: Dict[str, Any], fields: Iterable[str]) -> None:
    for field in fields:
        if field in data:
            try:
                data[field] = parse_date(data[field])
            except ValueError:
                raise ValidationError(
                    f"{field} must be a date (YYYY-MM-DD)", details={'field': field}
                )


def _pick(data: Optional[Dict[str, Any]], fields: Iterable[str]) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return {k: data[k] for k in fields if k in data}


def validate_chemical(data: Optional[Dict[str, Any]], partial: bool = False) -> Dict[str, Any]:
    """
    Validate a chemical payload.

    Args:
        data: Raw payload
        partial: If True (updates), required fields are not enforced

    Returns:
        Cleaned payload
    """
    cleaned = _pick(data, CHEMICAL_FIELDS)
    if not partial:
        _require(cleaned, ['name', 'batch_number', 'initial_quantity'])
    _to_int(cleaned, 'initial_quantity', minimum=0)
    _to_int(cleaned, 'current_quantity')
    _check_choice(cleaned, 'safety_class', SAFETY_CLASSES)
    _to_dates(cleaned, _CHEMICAL_DATES)

    ghs = cleaned.get('ghs_symbols')
    if ghs is not None and not (isinstance(ghs, list) and all(isinstance(s, str) for s in ghs)):
        raise ValidationError("ghs_symbols must be a list of strings", details={'field': 'ghs_symbols'})
    return cleaned


def validate_equipment(data: Optional[Dict[str, Any]], partial: bool = False) -> Dict[str, Any]:
    """Validate an equipment payload. Same contract as validate_chemical()."""
    cleaned = _pick(data, EQUIPMENT_FIELDS)
    if not partial:
        _require(cleaned, ['name', 'serial_id'])
    _check_choice(cleaned, 'status', EQUIPMENT_STATUSES)
    _check_choice(cleaned, 'condition', EQUIPMENT_CONDITIONS)
    _to_int(cleaned, 'assigned_user_id')
    _to_dates(cleaned, _EQUIPMENT_DATES)
    return cleaned


def validate_user(data: Optional[Dict[str, Any]], partial: bool = False) -> Dict[str, Any]:
    cleaned = _pick(data, USER_FIELDS)
    if not partial:
        _require(cleaned, ['name', 'email'])
    if 'email' in cleaned and cleaned['email'] is not None:
        email = str(cleaned['email']).strip()
        if '@' not in email:
            raise ValidationError(f"Invalid email '{email}'", details={'field': 'email'})
        cleaned['email'] = email
    _check_choice(cleaned, 'role', USER_ROLES)
    return cleaned


def validate_id(value: Any, field: str) -> int:
    """Coerce a required integer ID taken from a request body."""
    data = {field: value}
    _require(data, [field])
    _to_int(data, field, minimum=1)
    return data[field]


def validate_usage(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate a chemical usage payload (quantity, date, location, notes, opened)."""
    cleaned = _pick(data, ['quantity', 'date', 'location', 'notes', 'opened'])
    _require(cleaned, ['quantity', 'date'])
    _to_int(cleaned, 'quantity', minimum=1)
    _to_dates(cleaned, ['date'])
    cleaned['opened'] = bool(cleaned.get('opened', False))
    return cleaned


def validate_maintenance(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate an equipment maintenance payload (date, action, notes)."""
    cleaned = _pick(data, ['date', 'action', 'notes'])
    _require(cleaned, ['date', 'action'])
    _to_dates(cleaned, ['date'])
    if cleaned.get('notes') is None:
        cleaned['notes'] = ''
    return cleaned
