# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import httpx

from vehosts_runner.config import RunnerConfig
from vehosts_runner.execution_log import ExecutionLogger
from vehosts_runner.executor import SandboxedExecutor
from vehosts_runner.installer import DependencyInstaller
from vehosts_runner.integrations.veritas import VeritasIntegrator
from vehosts_runner.metadata import InMemoryMetadataStore, ProjectMetadataStore, RestMetadataStore
from vehosts_runner.storage import ArtifactStore, LocalArtifactStore, S3ArtifactStore


class RunnerFactory:
    """
    Builds stores and executors from configuration.
    """

    @staticmethod
    def get_artifact_store(config: RunnerConfig) -> ArtifactStore:
        if config.storage_backend == "s3":
            return S3ArtifactStore(
                bucket=config.storage_bucket,
                region=config.s3_region,
                access_key=config.s3_access_key,
                secret_key=config.s3_secret_key,
                endpoint_url=config.s3_endpoint_url,
            )
        elif config.storage_backend == "local":
            return LocalArtifactStore(config.local_storage_root)
        else:
            # Unreachable due to Pydantic validation
            raise ValueError(f"Unknown storage backend: {config.storage_backend}")  # pragma: no cover

    @staticmethod
    def get_metadata_store(config: RunnerConfig, client: httpx.AsyncClient | None = None) -> ProjectMetadataStore:
        if config.metadata_backend == "rest":
            if not config.rest_url or not config.rest_api_key:
                raise ValueError("rest_url and rest_api_key are required for the rest metadata backend")
            return RestMetadataStore(
                base_url=config.rest_url,
                api_key=config.rest_api_key,
                client=client,
                timeout=config.rest_timeout,
            )
        elif config.metadata_backend == "memory":
            return InMemoryMetadataStore()
        else:
            raise ValueError(f"Unknown metadata backend: {config.metadata_backend}")  # pragma: no cover

    @staticmethod
    def get_executor(config: RunnerConfig, store: ArtifactStore, log: ExecutionLogger) -> SandboxedExecutor:
        installer = DependencyInstaller(
            log=log,
            python_executable=config.python_executable,
            scope=config.install_scope,
            timeout=config.install_timeout,
            allowed_packages=config.allowed_packages,
            requirements_filename=config.requirements_filename,
        )
        return SandboxedExecutor(
            store=store,
            log=log,
            installer=installer,
            python_executable=config.python_executable,
            timeout=config.execution_timeout,
            entry_filename=config.entry_filename,
            requirements_filename=config.requirements_filename,
            workdir_prefix=config.workdir_prefix,
            workdir_root=config.workdir_root,
            veritas=VeritasIntegrator(enabled=config.enable_audit_logging),
        )
