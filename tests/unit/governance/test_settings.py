"""Tests for settings loading."""

from governance.core.config import Settings, get_settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.delegation_target_types_list == ["department", "committee"]
        assert settings.admin_roles_list == ["owner", "admin"]
        assert settings.notifications_enabled is True
        assert settings.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ADMIN_ROLES", "Owner, department_head ,")
        monkeypatch.setenv("NOTIFICATIONS_ENABLED", "false")
        settings = Settings(_env_file=None)
        assert settings.admin_roles_list == ["owner", "department_head"]
        assert settings.notifications_enabled is False

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
