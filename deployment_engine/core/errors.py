# deployment_engine/core/errors.py

from enum import Enum
from typing import List, Optional


class ErrorKind(Enum):
    """Stable error category callers can branch on."""
    CONFIGURATION = "CONFIGURATION"
    DEPENDENCY = "DEPENDENCY"
    INVARIANT = "INVARIANT"


# -----------------------------
# Base Errors
# -----------------------------

class DeployError(Exception):
    """Base class for all deployment engine errors.

    Carries a stable ``kind`` and a chain of context strings. ``str(err)``
    renders the chain outermost first, e.g.
    ``deploy service: create change set: access denied``.
    """

    kind = ErrorKind.DEPENDENCY

    def __init__(self, message: str, context: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.context: List[str] = list(context or [])

    def wrap(self, context: str) -> "DeployError":
        """Prepend a context string and return the same error."""
        self.context.insert(0, context)
        return self

    def __str__(self) -> str:
        return ": ".join(self.context + [self.message])


# -----------------------------
# Configuration Errors
# -----------------------------

class DeployConfigurationError(DeployError):
    """Manifest asserts something incompatible with the environment."""
    kind = ErrorKind.CONFIGURATION


class ManifestTypeError(DeployConfigurationError):
    """Manifest variant does not match the deployer."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"manifest is not of type {expected} (got {actual})")
        self.expected = expected
        self.actual = actual


class ManifestValidationError(DeployConfigurationError):
    """Raw manifest does not conform to its schema."""
    pass


class AliasRequiredError(DeployConfigurationError):
    def __init__(self, workload: str, env_name: str):
        super().__init__(
            f'"alias" must be specified for {workload} when deploying to '
            f'environment {env_name} with imported certificates'
        )
        self.workload = workload
        self.env_name = env_name


class AliasWithoutCertificatesError(DeployConfigurationError):
    def __init__(self):
        super().__init__(
            'cannot specify "alias" in an environment without imported certs '
            "(alias without certificate-bearing environment)"
        )


class AliasCertificateMismatchError(DeployConfigurationError):
    def __init__(self, env_name: str, reason: str):
        super().__init__(reason, [f"validate aliases against the imported certificate for env {env_name}"])
        self.env_name = env_name


class TopicNotFoundError(DeployConfigurationError):
    def __init__(self, topic_name: str, env_name: str):
        super().__init__(f"topic {topic_name} does not exist in environment {env_name}")
        self.topic_name = topic_name
        self.env_name = env_name


# -----------------------------
# Dependency Errors
# -----------------------------

class DeployDependencyError(DeployError):
    """An external collaborator call failed."""
    kind = ErrorKind.DEPENDENCY


class ArtifactUploadError(DeployError):
    """One upload phase failed. The kind is the kind of the underlying failure."""

    def __init__(self, phase: str, message: str, kind: ErrorKind = ErrorKind.DEPENDENCY):
        super().__init__(message, [f"upload {phase} artifacts"])
        self.phase = phase
        self.kind = kind


class StackApplyError(DeployDependencyError):
    pass


class EmptyChangeSetError(StackApplyError):
    """The change set contains no changes."""

    def __init__(self, stack_name: str):
        super().__init__(f"change set for stack {stack_name} contains no changes")
        self.stack_name = stack_name


# -----------------------------
# Invariant Violations
# -----------------------------

class RegionalResourcesError(DeployError):
    """Regional resources lookup returned an unusable result."""
    kind = ErrorKind.INVARIANT
