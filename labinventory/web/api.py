"""
Lab Inventory REST API
======================
JSON endpoints under /api/ for chemicals, equipment, users, the audit
trail and notifications.

Every response uses the same envelope:

    {"success": true, "data": ..., "meta": {...}}
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}

Reads require a logged-in session. Inventory and user management, audit
access and manual sweeps require the admin role. Logging usage and
maintenance is open to any logged-in user.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

from flask import Blueprint, request, jsonify, g

from labinventory.audit_service import get_audit_service, DEFAULT_AUDIT_PAGE_SIZE
from labinventory.exceptions import (
    InventoryError, NotFoundError, ValidationError, PermissionDeniedError,
    StoreError, SweepInProgressError
)
from labinventory.inventory_service import get_inventory_service
from labinventory.notification_service import (
    get_notification_service, get_notification_generator, DEFAULT_NOTIFICATION_PAGE_SIZE
)
from labinventory.session import get_db
from labinventory.utils import pagination_meta, parse_date
from labinventory.validators import validate_id
from labinventory.web.auth import admin_required, load_current_user, login_required

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')
api_bp.before_request(load_current_user)

ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 400,
    PermissionDeniedError: 403,
    SweepInProgressError: 409,
    StoreError: 500,
}


# ==================== Response Helpers ====================

def api_response(
    data: Any = None,
    meta: Optional[Dict] = None,
    status: int = 200
) -> Tuple[Dict, int]:
    """Create a standardized successful API response.

    Args:
        data: Response data (dict, list, or None)
        meta: Optional metadata (pagination, etc.)
        status: HTTP status code
    """
    response = {
        "success": True,
        "data": data
    }
    if meta:
        response["meta"] = meta
    return jsonify(response), status


def api_error(
    message: str,
    code: str = "ERROR",
    details: Optional[Dict] = None,
    status: int = 400
) -> Tuple[Dict, int]:
    """Create a standardized error API response."""
    response = {
        "success": False,
        "error": {
            "code": code,
            "message": message
        }
    }
    if details:
        response["error"]["details"] = details
    return jsonify(response), status


def paginated_response(items: list, total: int, page: int, limit: int):
    """Create a paginated API response."""
    return api_response(data=items, meta=pagination_meta(total, page, limit))


def _page_args(default_limit: int) -> Tuple[int, int]:
    page = max(request.args.get('page', 1, type=int), 1)
    limit = request.args.get('limit', default_limit, type=int)
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return page, limit


def _bool_arg(name: str) -> Optional[bool]:
    value = request.args.get(name)
    if value is None or value == '':
        return None
    value = value.strip().lower()
    if value in ('true', '1', 'yes'):
        return True
    if value in ('false', '0', 'no'):
        return False
    raise ValidationError(f"{name} must be true or false")


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ==================== Error Handlers ====================

@api_bp.errorhandler(InventoryError)
def inventory_error(e: InventoryError):
    status = next((s for cls, s in ERROR_STATUS.items() if isinstance(e, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.path} failed: {e}")
    return api_error(e.message, code=e.code, details=e.details or None, status=status)


def not_found(e):
    return api_error("Resource not found", code="NOT_FOUND", status=404)


def method_not_allowed(e):
    return api_error("Method not allowed", code="METHOD_NOT_ALLOWED", status=405)


def register_error_handlers(app):
    """Register JSON 404/405 handlers on the app.

    Routing errors are raised before any blueprint is selected, so these
    cannot live on api_bp.
    """
    app.register_error_handler(404, not_found)
    app.register_error_handler(405, method_not_allowed)


@api_bp.errorhandler(500)
def internal_error(e):
    return api_error("Internal server error", code="INTERNAL_ERROR", status=500)


# ==================== Health Check ====================

@api_bp.route('/health')
def health_check():
    """API health check endpoint."""
    db_healthy = get_db().health_check()
    return api_response({
        "status": "healthy" if db_healthy else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
    })


# ==================== Chemicals ====================

@api_bp.route('/chemicals', methods=['GET'])
@login_required
def list_chemicals():
    return api_response(get_inventory_service().list_chemicals(search=request.args.get('search')))


@api_bp.route('/chemicals/<int:chemical_id>', methods=['GET'])
@login_required
def get_chemical(chemical_id):
    return api_response(get_inventory_service().get_chemical(chemical_id))


@api_bp.route('/chemicals', methods=['POST'])
@admin_required
def create_chemical():
    chemical = get_inventory_service().create_chemical(_json_body(), g.current_user['id'])
    return api_response(chemical, status=201)


@api_bp.route('/chemicals/<int:chemical_id>', methods=['PUT'])
@admin_required
def update_chemical(chemical_id):
    return api_response(get_inventory_service().update_chemical(chemical_id, _json_body(), g.current_user['id']))


@api_bp.route('/chemicals/<int:chemical_id>', methods=['DELETE'])
@admin_required
def delete_chemical(chemical_id):
    get_inventory_service().delete_chemical(chemical_id, g.current_user['id'])
    return api_response({"deleted": chemical_id})


@api_bp.route('/chemicals/usage', methods=['POST'])
@login_required
def log_chemical_usage():
    """Record usage of a chemical and decrement its stock."""
    data = _json_body()
    chemical_id = validate_id(data.get('chemical_id'), 'chemical_id')
    log = get_inventory_service().log_chemical_usage(chemical_id, g.current_user['id'], data)
    return api_response(log, status=201)


@api_bp.route('/chemicals/<int:chemical_id>/usage', methods=['GET'])
@login_required
def get_chemical_usage(chemical_id):
    return api_response(get_inventory_service().get_usage_logs(chemical_id))


# ==================== Equipment ====================

@api_bp.route('/equipment', methods=['GET'])
@login_required
def list_equipment():
    return api_response(get_inventory_service().list_equipment())


@api_bp.route('/equipment/<int:equipment_id>', methods=['GET'])
@login_required
def get_equipment(equipment_id):
    return api_response(get_inventory_service().get_equipment(equipment_id))


@api_bp.route('/equipment', methods=['POST'])
@admin_required
def create_equipment():
    item = get_inventory_service().create_equipment(_json_body(), g.current_user['id'])
    return api_response(item, status=201)


@api_bp.route('/equipment/<int:equipment_id>', methods=['PUT'])
@admin_required
def update_equipment(equipment_id):
    return api_response(get_inventory_service().update_equipment(equipment_id, _json_body(), g.current_user['id']))


@api_bp.route('/equipment/<int:equipment_id>', methods=['DELETE'])
@admin_required
def delete_equipment(equipment_id):
    get_inventory_service().delete_equipment(equipment_id, g.current_user['id'])
    return api_response({"deleted": equipment_id})


@api_bp.route('/equipment/maintenance', methods=['POST'])
@api_bp.route('/equipment/usage', methods=['POST'])
@login_required
def add_maintenance_log():
    data = _json_body()
    equipment_id = validate_id(data.get('equipment_id'), 'equipment_id')
    log = get_inventory_service().add_maintenance_log(equipment_id, g.current_user['id'], data)
    return api_response(log, status=201)


@api_bp.route('/equipment/<int:equipment_id>/maintenance', methods=['GET'])
@login_required
def get_maintenance_logs(equipment_id):
    return api_response(get_inventory_service().get_maintenance_logs(equipment_id))


# ==================== Users ====================

@api_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    return api_response(get_inventory_service().list_users())


@api_bp.route('/users/<int:user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    return api_response(get_inventory_service().get_user(user_id))


@api_bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    user = get_inventory_service().create_user(_json_body(), g.current_user['id'])
    return api_response(user, status=201)


@api_bp.route('/users/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    return api_response(get_inventory_service().update_user(user_id, _json_body(), g.current_user['id']))


@api_bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    get_inventory_service().delete_user(user_id, g.current_user['id'])
    return api_response({"deleted": user_id})


# ==================== Audit ====================

@api_bp.route('/audit', methods=['GET'])
@admin_required
def list_audit():
    """List audit entries, newest first. Filters: type, action."""
    page, limit = _page_args(DEFAULT_AUDIT_PAGE_SIZE)
    filters = {
        'type': request.args.get('type'),
        'action': request.args.get('action'),
    }
    entries, total = get_audit_service().list_audit(filters, page=page, limit=limit)
    return paginated_response(entries, total, page, limit)


@api_bp.route('/audit/<int:audit_id>', methods=['GET'])
@admin_required
def get_audit(audit_id):
    return api_response(get_audit_service().get_audit_by_id(audit_id))


# ==================== Notifications ====================

@api_bp.route('/notifications', methods=['GET'])
@login_required
def list_notifications():
    """List notifications, newest first. Filter: is_read."""
    page, limit = _page_args(DEFAULT_NOTIFICATION_PAGE_SIZE)
    filters = {'is_read': _bool_arg('is_read')}
    service = get_notification_service()
    items = service.list_notifications(filters, page=page, limit=limit)
    total = service.count_notifications(filters)
    return paginated_response(items, total, page, limit)


@api_bp.route('/notifications/unread-count', methods=['GET'])
@login_required
def unread_count():
    return api_response({"count": get_notification_service().unread_count()})


@api_bp.route('/notifications/<int:notification_id>/read', methods=['PUT'])
@login_required
def mark_notification_read(notification_id):
    get_notification_service().mark_read(notification_id)
    return api_response({"id": notification_id, "is_read": True})


@api_bp.route('/notifications/read-all', methods=['PUT'])
@login_required
def mark_all_notifications_read():
    updated = get_notification_service().mark_all_read()
    return api_response({"updated": updated})


@api_bp.route('/notifications/<int:notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id):
    get_notification_service().delete_notification(notification_id)
    return api_response({"deleted": notification_id})


@api_bp.route('/notifications/sweep', methods=['POST'])
@admin_required
def run_sweep():
    """Run the notification sweep now. Optional body: {"today": "YYYY-MM-DD"}."""
    data = _json_body()
    try:
        today = parse_date(data.get('today'))
    except ValueError:
        raise ValidationError("today must be a date (YYYY-MM-DD)")
    result = get_notification_generator().run_sweep(today)
    return api_response(result.to_dict())
