"""
REST API Integration Tests

Tests the Flask application for:
- Authentication and admin-only routes
- Error mapping (404, 405, 400, 403, 409, 502)
- Chemical usage and maintenance endpoints
- Audit and notification endpoints

Run with: pytest tests/test_api.py -v
"""

from datetime import date, datetime, timedelta
from unittest import mock

import pytest

from labinventory.models import AuditLog
from labinventory.notification_service import NotificationGenerator
from labinventory.session import get_session


def _chemical_payload(**kwargs):
    payload = {'name': 'Acetone', 'batch_number': 'AC-1', 'initial_quantity': 100}
    payload.update(kwargs)
    return payload


class TestAuth:

    def test_health_needs_no_login(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'healthy'

    def test_reads_require_login(self, client):
        response = client.get('/api/chemicals')
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_me(self, login, regular_user):
        client = login(regular_user)
        response = client.get('/api/auth/me')
        assert response.status_code == 200
        assert response.get_json()['data']['email'] == 'uma@example.com'

    def test_logout(self, login, regular_user):
        client = login(regular_user)
        assert client.post('/api/auth/logout').status_code == 200
        assert client.get('/api/auth/me').status_code == 401

    def test_session_of_deleted_user_is_dropped(self, login, inventory, admin_user, regular_user):
        client = login(regular_user)
        inventory.delete_user(regular_user['id'], admin_user['id'])
        assert client.get('/api/chemicals').status_code == 401

    def test_google_callback_disabled_without_credentials(self, client):
        assert client.get('/auth/google').status_code == 404

    def test_google_callback_signs_in(self, app, client):
        app.config['GOOGLE_OAUTH_ENABLED'] = True
        with mock.patch('flask_dance.contrib.google.google', new=mock.MagicMock()) as google:
            google.authorized = True
            google.get.return_value.ok = True
            google.get.return_value.json.return_value = {
                'id': 'g-123', 'email': 'grace@example.com', 'name': 'Grace'
            }
            response = client.get('/auth/google')

        assert response.status_code == 302
        me = client.get('/api/auth/me').get_json()['data']
        assert me['email'] == 'grace@example.com'
        assert me['role'] == 'user'

    @pytest.mark.parametrize('info', [
        {'email': 'grace@example.com'},
        {'id': 'g-123'},
        {},
    ])
    def test_google_callback_with_incomplete_user_info_is_502(self, app, client, info):
        app.config['GOOGLE_OAUTH_ENABLED'] = True
        with mock.patch('flask_dance.contrib.google.google', new=mock.MagicMock()) as google:
            google.authorized = True
            google.get.return_value.ok = True
            google.get.return_value.json.return_value = info
            response = client.get('/auth/google')

        assert response.status_code == 502
        assert response.get_json()['error']['code'] == 'OAUTH_ERROR'
        assert client.get('/api/auth/me').status_code == 401

    def test_mutations_require_admin(self, login, regular_user):
        client = login(regular_user)
        response = client.post('/api/chemicals', json=_chemical_payload())
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'PERMISSION_DENIED'

    def test_audit_requires_admin(self, login, regular_user):
        assert login(regular_user).get('/api/audit').status_code == 403


class TestRoutingErrors:

    def test_unknown_api_path_is_json_404(self, client):
        response = client.get('/api/nonexistent')
        assert response.status_code == 404
        body = response.get_json()
        assert body['success'] is False
        assert body['error']['code'] == 'NOT_FOUND'

    def test_wrong_method_is_json_405(self, client):
        response = client.put('/api/health')
        assert response.status_code == 405
        assert response.get_json()['error']['code'] == 'METHOD_NOT_ALLOWED'


class TestChemicalRoutes:

    def test_create_and_get(self, login, admin_user):
        client = login(admin_user)
        created = client.post('/api/chemicals', json=_chemical_payload())
        assert created.status_code == 201
        chemical_id = created.get_json()['data']['id']

        response = client.get(f'/api/chemicals/{chemical_id}')
        data = response.get_json()['data']
        assert data['name'] == 'Acetone'
        assert data['usage_log'] == []

    def test_unknown_chemical_is_404(self, login, admin_user):
        response = login(admin_user).get('/api/chemicals/999')
        assert response.status_code == 404
        body = response.get_json()
        assert body['success'] is False
        assert body['error']['code'] == 'NOT_FOUND'

    def test_validation_error_is_400(self, login, admin_user):
        response = login(admin_user).post('/api/chemicals', json={'name': 'Missing fields'})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_usage_by_regular_user(self, login, inventory, admin_user, regular_user):
        chemical = inventory.create_chemical(_chemical_payload(), admin_user['id'])
        client = login(regular_user)

        response = client.post('/api/chemicals/usage', json={
            'chemical_id': chemical['id'], 'quantity': 25, 'date': '2025-01-10', 'location': 'Bench 1'
        })

        assert response.status_code == 201
        assert response.get_json()['data']['current_quantity'] == 75
        usage = client.get(f"/api/chemicals/{chemical['id']}/usage").get_json()['data']
        assert [u['quantity'] for u in usage] == [25]

    def test_usage_without_chemical_id_is_400(self, login, regular_user):
        response = login(regular_user).post('/api/chemicals/usage', json={'quantity': 1, 'date': '2025-01-10'})
        assert response.status_code == 400

    def test_delete(self, login, inventory, admin_user):
        chemical = inventory.create_chemical(_chemical_payload(), admin_user['id'])
        client = login(admin_user)
        assert client.delete(f"/api/chemicals/{chemical['id']}").status_code == 200
        assert client.get(f"/api/chemicals/{chemical['id']}").status_code == 404


class TestEquipmentAndUsers:

    def test_maintenance_log(self, login, inventory, admin_user, regular_user):
        item = inventory.create_equipment({'name': 'Hood', 'serial_id': 'FH-1'}, admin_user['id'])
        client = login(regular_user)

        response = client.post('/api/equipment/maintenance', json={
            'equipment_id': item['id'], 'date': '2025-01-05', 'action': 'Inspection'
        })
        assert response.status_code == 201
        logs = client.get(f"/api/equipment/{item['id']}/maintenance").get_json()['data']
        assert logs[0]['action'] == 'Inspection'
        assert logs[0]['user_name'] == 'Uma User'

    def test_duplicate_serial_is_400(self, login, admin_user):
        client = login(admin_user)
        client.post('/api/equipment', json={'name': 'A', 'serial_id': 'S-1'})
        assert client.post('/api/equipment', json={'name': 'B', 'serial_id': 'S-1'}).status_code == 400

    def test_self_delete_is_403(self, login, admin_user):
        response = login(admin_user).delete(f"/api/users/{admin_user['id']}")
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'PERMISSION_DENIED'

    def test_list_users(self, login, admin_user, regular_user):
        users = login(admin_user).get('/api/users').get_json()['data']
        assert {u['email'] for u in users} == {'ada@example.com', 'uma@example.com'}


class TestAuditRoutes:

    def test_list_with_pagination_meta(self, login, inventory, admin_user):
        for i in range(3):
            inventory.create_chemical(_chemical_payload(batch_number=f'B{i}'), admin_user['id'])

        response = login(admin_user).get('/api/audit?type=chemical&page=1&limit=2')
        body = response.get_json()

        assert response.status_code == 200
        assert len(body['data']) == 2
        assert body['meta'] == {'page': 1, 'limit': 2, 'total': 3, 'pages': 2}
        assert body['data'][0]['user_name'] == 'Ada Admin'

    def test_second_page(self, login, admin_user):
        base = datetime(2025, 1, 1, 9, 0, 0)
        with get_session() as session:
            for i in range(25):
                session.add(AuditLog(type='chemical', action='add', item_name=f'I{i}',
                                     user_id=admin_user['id'], timestamp=base + timedelta(minutes=i)))

        body = login(admin_user).get('/api/audit?page=2&limit=10').get_json()

        assert [e['item_name'] for e in body['data']] == [f'I{i}' for i in range(14, 4, -1)]
        assert body['meta'] == {'page': 2, 'limit': 10, 'total': 25, 'pages': 3}

    def test_get_unknown_is_404(self, login, admin_user):
        assert login(admin_user).get('/api/audit/999').status_code == 404


class TestNotificationRoutes:

    def _seed(self, inventory, admin_user):
        inventory.create_chemical(_chemical_payload(current_quantity=5), admin_user['id'])
        inventory.create_equipment(
            {'name': 'Hood', 'serial_id': 'FH-1', 'next_maintenance': (date.today() + timedelta(days=3)).isoformat()},
            admin_user['id']
        )

    def test_sweep_and_list(self, login, inventory, admin_user):
        self._seed(inventory, admin_user)
        client = login(admin_user)

        sweep = client.post('/api/notifications/sweep', json={})
        assert sweep.status_code == 200
        assert sweep.get_json()['data']['generated'] == {'low_stock': 1, 'expiration': 0, 'maintenance': 1}

        body = client.get('/api/notifications').get_json()
        assert body['meta']['total'] == 2
        assert {n['item_name'] for n in body['data']} == {'Acetone', 'Hood'}
        assert client.get('/api/notifications/unread-count').get_json()['data'] == {'count': 2}

    def test_sweep_with_explicit_date(self, login, inventory, admin_user):
        inventory.create_chemical(_chemical_payload(expiration_date='2025-03-01'), admin_user['id'])
        response = login(admin_user).post('/api/notifications/sweep', json={'today': '2025-01-15'})
        assert response.get_json()['data']['generated']['expiration'] == 1

    def test_sweep_bad_date_is_400(self, login, admin_user):
        response = login(admin_user).post('/api/notifications/sweep', json={'today': 'soon'})
        assert response.status_code == 400

    def test_sweep_in_progress_is_409(self, login, admin_user):
        NotificationGenerator().acquire_lease('another-runner')
        response = login(admin_user).post('/api/notifications/sweep', json={})
        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'SWEEP_IN_PROGRESS'

    def test_sweep_requires_admin(self, login, regular_user):
        assert login(regular_user).post('/api/notifications/sweep', json={}).status_code == 403

    def test_read_and_read_all(self, login, inventory, admin_user, regular_user):
        self._seed(inventory, admin_user)
        login(admin_user).post('/api/notifications/sweep', json={})
        client = login(regular_user)

        first = client.get('/api/notifications').get_json()['data'][0]
        assert client.put(f"/api/notifications/{first['id']}/read").status_code == 200
        unread = client.get('/api/notifications?is_read=false').get_json()
        assert unread['meta']['total'] == 1

        assert client.put('/api/notifications/read-all').get_json()['data'] == {'updated': 1}
        assert client.get('/api/notifications/unread-count').get_json()['data'] == {'count': 0}

    def test_unknown_notification_is_404(self, login, regular_user):
        client = login(regular_user)
        assert client.put('/api/notifications/999/read').status_code == 404
        assert client.delete('/api/notifications/999').status_code == 404

    def test_bad_is_read_filter_is_400(self, login, regular_user):
        assert login(regular_user).get('/api/notifications?is_read=maybe').status_code == 400
