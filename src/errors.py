"""Error taxonomy shared by the compiler, remover and status tools.

Compiler-side errors propagate and abort the run. Remover and status
tools catch them per step and keep going.
"""


class BootstrapError(Exception):
    """Base class for all cluster-bootstrap errors."""


class ValidationError(BootstrapError):
    """Malformed or missing regional spec data."""


class ConfigError(ValidationError):
    """Tool configuration error."""


class MissingFileError(ValidationError):
    """Referenced spec document does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Spec file not found: {path}")


class MissingFieldError(ValidationError):
    """One or more required spec fields are unset."""

    def __init__(self, fields: list[str], source: str = ''):
        self.fields = list(fields)
        where = f" in {source}" if source else ''
        super().__init__(f"Missing required field(s){where}: {', '.join(self.fields)}")


class UnknownTypeError(ValidationError):
    """Cluster type is not one of ocp, eks, hcp."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown cluster type '{value}'. Expected one of: ocp, eks, hcp")


class InvalidNameError(ValidationError):
    """Cluster name does not follow the <type>-<number>[-suffix] format."""


class DuplicateClusterError(ValidationError):
    """Same cluster name declared more than once in the repository."""


class NotFoundError(BootstrapError):
    """Referenced resource is absent."""


class ConnectivityError(BootstrapError):
    """Hub or managed-cluster API unreachable."""


class OperationTimeoutError(BootstrapError, TimeoutError):
    """A bounded wait exceeded its elapsed-time ceiling."""


class HubCommandError(BootstrapError):
    """An oc invocation failed for a reason other than NotFound/connectivity."""


class PartialFailureWarning(UserWarning):
    """A cleanup phase failed but processing continued."""
