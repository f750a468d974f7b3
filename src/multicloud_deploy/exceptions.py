"""
Custom exception hierarchy for multicloud-deploy.

Each exception carries a context dict for structured logging.
"""


class DeployError(Exception):
    """Base exception for all multicloud-deploy errors."""

    def __init__(self, message: str, context: dict = None):
        self.context = context or {}
        super().__init__(message)


class ConfigurationError(DeployError):
    """Raised when configuration is missing, unreadable or invalid."""
    pass


class ValidationError(DeployError):
    """Raised when input validation fails."""
    pass


class CommandExecutionError(DeployError):
    """
    Raised when an external command fails and throw_on_error is set.

    The full CommandResult is attached so callers can branch on its
    category and still surface the original stdout/stderr.
    """

    def __init__(self, message: str, result, context: dict = None):
        self.result = result
        super().__init__(message, context=context)

    @property
    def category(self):
        return self.result.category


class PrerequisiteError(DeployError):
    """Raised when a required provider CLI is not installed."""
    pass


class AuthenticationError(DeployError):
    """Raised when a provider identity is missing or expired."""

    def __init__(self, message: str, needs_login: bool = False, context: dict = None):
        self.needs_login = needs_login
        super().__init__(message, context=context)


class ReconcileError(DeployError):
    """Base exception for resource reconciliation steps."""
    pass


class BucketError(ReconcileError):
    """Raised when the object storage bucket cannot be ensured or configured."""
    pass


class DatabaseError(ReconcileError):
    """Raised when the database cannot be ensured or migrated."""
    pass


class SecretsDeploymentError(ReconcileError):
    """Raised when secrets cannot be pushed to the worker."""
    pass


class ComputeDeploymentError(ReconcileError):
    """Raised when the worker deployment fails."""
    pass


class StaticSiteDeploymentError(ReconcileError):
    """Raised when the static site deployment fails."""
    pass


class DeploymentInProgressError(DeployError):
    """Raised when a deployment is requested while another one is running."""
    pass


class HistoryStoreError(DeployError):
    """Raised when deployment history cannot be read or written."""
    pass
