import hashlib

from vehosts_runner.utils.logger import logger


class VeritasIntegrator:
    """Audit trail for project executions.

    Records a fingerprint of every entry script before it runs. Entries go to
    the application log under the ``AUDIT`` prefix.
    """

    def __init__(self, service_name: str = "vehosts-runner", enabled: bool = True):
        """Initializes the VeritasIntegrator.

        Args:
            service_name: The name reported with each audit entry.
            enabled: Whether to emit audit entries.
        """
        self.service_name = service_name
        self.enabled = enabled
        if self.enabled:
            logger.bind(service=service_name).info("Audit logging enabled")

    def log_pre_execution(self, code: bytes, project_id: str, language: str) -> str:
        """Log an execution attempt.

        Args:
            code: The entry-file source about to be executed.
            project_id: The project being run.
            language: The project language.

        Returns:
            str: The SHA-256 hex digest of the source.
        """
        code_hash = hashlib.sha256(code).hexdigest()
        if self.enabled:
            logger.bind(service=self.service_name).info(
                f"AUDIT: Executing {language} project {project_id}. Hash: {code_hash}, Length: {len(code)}"
            )
        return code_hash
