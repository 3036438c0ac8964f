"""
Settings from the environment.
"""
import pytest
from pydantic import ValidationError

from zeitlib.config import Settings, get_settings


class TestCaps:
    def test_unset_means_unlimited(self, monkeypatch):
        monkeypatch.delenv('ZEIT_MAX_OVERTIME_HOURS', raising=False)
        monkeypatch.setenv('ZEIT_MAX_MINUS_HOURS', '')
        s = get_settings()
        assert s.max_overtime_hours is None
        assert s.max_minus_hours is None

    def test_comma_decimal(self, monkeypatch):
        monkeypatch.setenv('ZEIT_MAX_OVERTIME_HOURS', '40,5')
        assert get_settings().max_overtime_hours == 40.5

    def test_not_a_number(self):
        with pytest.raises(ValidationError, match='Stundengrenze muss eine Zahl sein'):
            Settings(max_overtime_hours='viel')

    def test_negative_cap_has_german_message(self, monkeypatch):
        monkeypatch.setenv('ZEIT_MAX_MINUS_HOURS', '-5')
        with pytest.raises(ValueError, match='Stundengrenze darf nicht negativ sein'):
            get_settings()

    def test_zero_is_allowed(self):
        assert Settings(max_minus_hours=0).max_minus_hours == 0.0


class TestEnvironment:
    def test_values_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('ZEIT_DB_PATH', str(tmp_path))
        monkeypatch.setenv('ZEIT_LOG_LEVEL', 'debug')
        monkeypatch.setenv('ZEIT_DEFAULT_REGION', 'DE-BY')
        s = get_settings()
        assert s.db_path == str(tmp_path)
        assert s.log_level == 'DEBUG'
        assert s.default_region == 'DE-BY'
