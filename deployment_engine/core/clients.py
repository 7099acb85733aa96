# deployment_engine/core/clients.py
"""
Collaborator contracts used by the deployers.

Concrete adapters live in infrastructure/aws, in-memory doubles in
infrastructure/memory.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from deployment_engine.core.models import (
    RegionalResources,
    StackApplyOptions,
    StackParameter,
    Topic,
)


class Uploader(ABC):
    """Object store upload client."""

    @abstractmethod
    def upload(self, bucket: str, key: str, data: bytes) -> str:
        """
        Store ``data`` under ``key``.
        Returns the object URL.
        """
        raise NotImplementedError


class RegionalResourcesGetter(ABC):

    @abstractmethod
    def get_app_resources_by_region(self, app: str, region: str) -> RegionalResources:
        raise NotImplementedError


class TopicLister(ABC):
    """Discovers the pub-sub topics published in an environment."""

    @abstractmethod
    def list_topics(self, app: str, env: str) -> List[Topic]:
        raise NotImplementedError


class AliasCertValidator(ABC):

    @abstractmethod
    def validate_cert_aliases(self, aliases: Sequence[str], certs: Sequence[str]) -> None:
        """
        Raise if any alias is not covered by one of the certificates.
        """
        raise NotImplementedError


class ImageBuilderPusher(ABC):
    """Builds a container image locally and pushes it to a repository."""

    @abstractmethod
    def build_and_push(
        self,
        repo_url: str,
        dockerfile: str,
        context: str,
        tags: Sequence[str],
        build_args: Optional[Mapping[str, str]] = None,
        target: Optional[str] = None,
        cache_from: Sequence[str] = (),
        platform: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build, tag and push.
        Returns the pushed image digest.
        """
        raise NotImplementedError


class ServiceForceUpdater(ABC):
    """Rolls a running service onto fresh tasks without a stack change."""

    @abstractmethod
    def last_updated_at(self, app: str, env: str, workload: str) -> datetime:
        """Time the service's current deployment was last updated."""
        raise NotImplementedError

    @abstractmethod
    def force_update_service(self, app: str, env: str, workload: str) -> None:
        """Start a new deployment and wait for the service to stabilize."""
        raise NotImplementedError


class StackClient(ABC):
    """Stack apply client plus read access to deployed stacks."""

    @abstractmethod
    def deploy(
        self,
        stack_name: str,
        template: str,
        parameters: List[StackParameter],
        tags: Dict[str, str],
        bucket: str,
        options: StackApplyOptions,
    ) -> None:
        """
        Create or update the stack and wait for completion.
        Identical inputs are a no-op on the control plane.
        """
        raise NotImplementedError

    @abstractmethod
    def deployed_parameters(self, stack_name: str) -> List[StackParameter]:
        """Parameters of the currently deployed stack, [] if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def stack_output(self, stack_name: str, output_key: str) -> str:
        """Value of one stack output, "" if absent."""
        raise NotImplementedError

    def force_update_output_id(self, stack_name: str) -> str:
        return self.stack_output(stack_name, "LastForceDeployID")

    def environment_version(self, stack_name: str) -> str:
        return self.stack_output(stack_name, "EnvironmentVersion")
