"""Domain errors for fastpg."""


class ProvisionError(RuntimeError):
    """Raised when the database cannot be provisioned."""


class StagingError(ProvisionError):
    """Raised when the build workspace cannot be prepared."""


class BuildError(ProvisionError):
    """Raised when the image build or container start fails."""


class DiskFullError(ProvisionError):
    """Raised when container output reports an exhausted storage volume."""


class ProvisionTimeoutError(ProvisionError):
    """Raised when the database is not ready within the allowed time."""
