"""
Tests for date helpers, pagination math and configuration
"""

from datetime import date, datetime

import pytest

from labinventory.config import Settings, configure, get_database_url
from labinventory.exceptions import NotFoundError, ValidationError
from labinventory.utils import add_months, page_offset, pagination_meta, parse_date
from labinventory.validators import validate_chemical, validate_id, validate_user


class TestAddMonths:

    @pytest.mark.parametrize("start, months, expected", [
        (date(2025, 1, 15), 3, date(2025, 4, 15)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2023, 11, 30), 3, date(2024, 2, 29)),
        (date(2025, 8, 31), 6, date(2026, 2, 28)),
        (date(2025, 12, 1), 1, date(2026, 1, 1)),
        (date(2025, 3, 31), -1, date(2025, 2, 28)),
    ])
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected


class TestParseDate:

    def test_iso_string(self):
        assert parse_date('2025-02-03') == date(2025, 2, 3)

    def test_datetime_string_is_truncated(self):
        assert parse_date('2025-02-03T10:11:12Z') == date(2025, 2, 3)

    def test_passthrough(self):
        assert parse_date(date(2025, 2, 3)) == date(2025, 2, 3)
        assert parse_date(datetime(2025, 2, 3, 9)) == date(2025, 2, 3)

    def test_empty(self):
        assert parse_date(None) is None
        assert parse_date('') is None

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_date('not-a-date')


class TestPagination:

    def test_pages_is_ceiling(self):
        assert pagination_meta(101, 1, 50) == {'page': 1, 'limit': 50, 'total': 101, 'pages': 3}
        assert pagination_meta(100, 2, 50)['pages'] == 2
        assert pagination_meta(0, 1, 20)['pages'] == 0

    def test_offset(self):
        assert page_offset(1, 20) == 0
        assert page_offset(3, 20) == 40
        assert page_offset(0, 20) == 0


class TestValidators:

    def test_chemical_dates_and_ints(self):
        cleaned = validate_chemical({
            'name': 'A', 'batch_number': 'B', 'initial_quantity': '12',
            'expiration_date': '2025-06-30', 'unknown': 'dropped',
        })
        assert cleaned['initial_quantity'] == 12
        assert cleaned['expiration_date'] == date(2025, 6, 30)
        assert 'unknown' not in cleaned

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            validate_chemical({'expiration_date': '30/06/2025'}, partial=True)

    def test_non_integer_quantity(self):
        with pytest.raises(ValidationError):
            validate_chemical({'name': 'A', 'batch_number': 'B', 'initial_quantity': 'lots'})

    def test_ghs_symbols_must_be_strings(self):
        with pytest.raises(ValidationError):
            validate_chemical({'ghs_symbols': 'GHS02'}, partial=True)

    def test_user_email_and_role(self):
        with pytest.raises(ValidationError):
            validate_user({'name': 'A', 'email': 'nope'})
        with pytest.raises(ValidationError):
            validate_user({'name': 'A', 'email': 'a@example.com', 'role': 'root'})

    def test_validate_id(self):
        assert validate_id('7', 'chemical_id') == 7
        with pytest.raises(ValidationError):
            validate_id(None, 'chemical_id')

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            validate_chemical(['not', 'a', 'dict'])


class TestConfig:

    def test_postgres_url_rewritten(self, monkeypatch):
        monkeypatch.setenv('DATABASE_URL', 'postgres://u:p@host/db')
        assert get_database_url() == 'postgresql://u:p@host/db'

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('LOW_STOCK_RATIO', '0.2')
        monkeypatch.setenv('ENFORCE_NON_NEGATIVE_STOCK', 'true')
        monkeypatch.setenv('SWEEP_LEASE_ENABLED', '0')
        settings = Settings.from_env()

        assert settings.low_stock_ratio == 0.2
        assert settings.enforce_non_negative_stock is True
        assert settings.sweep_lease_enabled is False
        assert settings.expiration_window_months == 3

    def test_configure_rejects_unknown_keys(self):
        with pytest.raises(AttributeError):
            configure(Settings(database_url='sqlite://'), no_such_setting=1)

    def test_oauth_enabled_needs_both_credentials(self):
        assert not Settings(database_url='sqlite://', google_client_id='id').google_oauth_enabled
        assert Settings(database_url='sqlite://', google_client_id='id',
                        google_client_secret='secret').google_oauth_enabled


class TestExceptions:

    def test_str_includes_code(self):
        assert str(ValidationError('bad input')) == '[VALIDATION_ERROR] bad input'

    def test_not_found_message(self):
        e = NotFoundError('audit_log', 5)
        assert e.message == 'Audit log 5 not found'
        assert e.details == {'entity_type': 'audit_log', 'entity_id': 5}
