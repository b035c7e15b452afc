# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import sys
from typing import Any, Literal

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from vehosts_runner.integrations.vault import VaultIntegrator


class VaultSettingsSource(PydanticBaseSettingsSource):
    """
    Custom Pydantic Settings Source that reads secrets through the VaultIntegrator.
    """

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        # Unused because __call__ returns the full mapping.
        return None, field_name, False  # pragma: no cover

    def __call__(self) -> dict[str, Any]:
        vault = VaultIntegrator()
        secrets: dict[str, Any] = {}

        # Config field -> secret key
        mapping = {
            "s3_access_key": "S3_ACCESS_KEY",
            "s3_secret_key": "S3_SECRET_KEY",
            "rest_api_key": "SUPABASE_SERVICE_ROLE_KEY",
        }

        for field, key in mapping.items():
            val = vault.get_secret(key)
            if val:
                secrets[field] = val

        return secrets


class RunnerConfig(BaseSettings):
    """
    Configuration for the project runner.
    """

    # Execution
    python_executable: str = sys.executable
    entry_filename: str = "main.py"
    requirements_filename: str = "requirements.txt"
    workdir_prefix: str = "vehosts-run-"
    workdir_root: str | None = None  # system temp dir when unset
    execution_timeout: float = 60.0

    # Dependency installation
    install_scope: Literal["workdir", "user"] = "workdir"
    install_timeout: float = 300.0
    allowed_packages: set[str] | None = None

    enable_audit_logging: bool = True

    # Artifact storage
    storage_backend: Literal["local", "s3"] = "local"
    storage_bucket: str = "project-files"
    local_storage_root: str = "storage"
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_endpoint_url: str | None = None

    # Project metadata
    metadata_backend: Literal["memory", "rest"] = "memory"
    rest_url: str | None = None
    rest_api_key: str | None = None
    rest_timeout: float = 10.0

    # HTTP surface
    host: str = "0.0.0.0"
    port: int = 8080

    model_config = SettingsConfigDict(
        env_prefix="VEHOSTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            VaultSettingsSource(settings_cls),
            file_secret_settings,
        )
