from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "Workspace Governance"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./governance.db"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/governance"
    file_logging: bool = False
    console_logging: bool = True
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 5

    # Delegation
    delegation_target_types: str = "department,committee"

    # Roles holding admin capability on a workspace
    admin_roles: str = "owner,admin"

    @property
    def delegation_target_types_list(self) -> list[str]:
        return [t.strip().lower() for t in self.delegation_target_types.split(",") if t.strip()]

    @property
    def admin_roles_list(self) -> list[str]:
        return [r.strip().lower() for r in self.admin_roles.split(",") if r.strip()]

    # Notifications
    notifications_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
