# Assumptions:
# - Configuration management using environment variables
# - Pydantic Settings for validation
# - Variable names follow the cloud SDK conventions so existing deployments work unchanged

import os
import sys
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

CLI_CREDENTIAL_SUFFIX = Path("gcloud") / "application_default_credentials.json"


def _default_config_dir() -> str | None:
    if sys.platform.startswith("win"):
        return os.environ.get("APPDATA")
    home = os.environ.get("HOME")
    return str(Path(home) / ".config") if home else None


class Settings(BaseSettings):
    """Token subsystem settings"""

    # Service
    service_name: str = "authkit"
    log_level: str = "INFO"
    log_format: str = "json"

    # Credentials
    google_application_credentials: str | None = None
    cloud_config_dir: str | None = Field(default_factory=_default_config_dir)
    project_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("project_id", "google_cloud_project", "gcloud_project"),
    )
    service_account_id: str | None = None

    # Emulator
    auth_emulator_host: str | None = Field(
        default=None,
        validation_alias=AliasChoices("auth_emulator_host", "firebase_auth_emulator_host"),
    )

    # HTTP
    http_timeout: float = 10.0

    # OpenTelemetry
    otel_exporter_otlp_endpoint: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def cli_credential_path(self) -> Path | None:
        """Path of the CLI-login credential cache file, if a config dir is known"""
        if not self.cloud_config_dir:
            return None
        return Path(self.cloud_config_dir) / CLI_CREDENTIAL_SUFFIX

    @property
    def emulator_enabled(self) -> bool:
        return bool(self.auth_emulator_host)


def get_settings() -> Settings:
    """Get settings read from the current environment"""
    return Settings()
