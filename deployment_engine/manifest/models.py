# deployment_engine/manifest/models.py
"""Workload manifest variants."""

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


# ============================================
# ENUMS
# ============================================

class WorkloadType(Enum):
    """Closed set of manifest variants."""
    BACKEND_SERVICE = "Backend Service"
    WORKER_SERVICE = "Worker Service"
    SCHEDULED_JOB = "Scheduled Job"
    ENVIRONMENT = "Environment"


# ============================================
# SHARED BLOCKS
# ============================================

@dataclass
class DockerBuildArgs:
    """Local image build configuration."""
    dockerfile: Optional[str] = None
    context: Optional[str] = None
    args: Dict[str, str] = field(default_factory=dict)
    target: Optional[str] = None
    cache_from: List[str] = field(default_factory=list)

    def resolve(self, root: str) -> "DockerBuildArgs":
        """Fill in dockerfile/context relative to the workspace root."""
        context = self.context
        dockerfile = self.dockerfile
        if context is None and dockerfile is not None:
            context = posixpath.dirname(dockerfile)
        if dockerfile is None and context is not None:
            dockerfile = posixpath.join(context, "Dockerfile")
        return DockerBuildArgs(
            dockerfile=posixpath.join(root, dockerfile) if dockerfile else None,
            context=posixpath.join(root, context) if context is not None else None,
            args=dict(self.args),
            target=self.target,
            cache_from=list(self.cache_from),
        )


@dataclass
class ImageConfig:
    """Either a local build or a prebuilt image location."""
    build: Optional[DockerBuildArgs] = None
    location: Optional[str] = None
    port: Optional[int] = None

    def builds_locally(self) -> bool:
        return self.build is not None and self.location is None


@dataclass
class SidecarConfig:
    image: ImageConfig = field(default_factory=ImageConfig)
    port: Optional[int] = None
    env_file: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)
    essential: bool = True


@dataclass
class RoutingRule:
    """An HTTP exposure declaration."""
    path: Optional[str] = None
    alias: List[str] = field(default_factory=list)
    target_container: Optional[str] = None
    target_port: Optional[int] = None
    healthcheck_path: Optional[str] = None

    def is_empty(self) -> bool:
        return (
            self.path is None
            and not self.alias
            and self.target_container is None
            and self.target_port is None
            and self.healthcheck_path is None
        )

    def has_alias(self) -> bool:
        return len(self.alias) != 0


@dataclass
class HTTPConfig:
    main: RoutingRule = field(default_factory=RoutingRule)
    additional_rules: List[RoutingRule] = field(default_factory=list)

    def is_empty(self) -> bool:
        return self.main.is_empty() and not self.additional_rules


@dataclass
class SQSQueue:
    retention_seconds: Optional[int] = None
    delay_seconds: Optional[int] = None
    timeout_seconds: Optional[int] = None
    dead_letter_tries: Optional[int] = None
    fifo: bool = False


@dataclass
class TopicSubscription:
    """A worker's subscription to a topic published by another service."""
    name: str
    service: str
    queue: Optional[SQSQueue] = None

    def has_dedicated_queue(self) -> bool:
        return self.queue is not None


# ============================================
# WORKLOADS
# ============================================

@dataclass
class WorkloadManifest:
    """Fields shared by every deployable workload."""
    name: str
    image: ImageConfig = field(default_factory=ImageConfig)
    cpu: int = 256
    memory: int = 512
    platform: str = "linux/x86_64"
    variables: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, str] = field(default_factory=dict)
    env_file: Optional[str] = None
    sidecars: Dict[str, SidecarConfig] = field(default_factory=dict)
    raw_manifest: str = field(default="", repr=False, compare=False)

    workload_type = None

    def build_args(self, root: str) -> Dict[str, DockerBuildArgs]:
        """Containers that need a local build, keyed by container name."""
        out: Dict[str, DockerBuildArgs] = {}
        if self.image.builds_locally():
            out[self.name] = self.image.build.resolve(root)
        for sidecar_name, sidecar in sorted(self.sidecars.items()):
            if sidecar.image.builds_locally():
                out[sidecar_name] = sidecar.image.build.resolve(root)
        return out

    def env_files(self) -> Dict[str, str]:
        """Env file path per container, including sidecars."""
        files: Dict[str, str] = {}
        if self.env_file:
            files[self.name] = self.env_file
        for sidecar_name, sidecar in self.sidecars.items():
            if sidecar.env_file:
                files[sidecar_name] = sidecar.env_file
        return files

    def container_platform(self) -> str:
        return self.platform


@dataclass
class BackendServiceManifest(WorkloadManifest):
    count: int = 1
    http: HTTPConfig = field(default_factory=HTTPConfig)

    workload_type = WorkloadType.BACKEND_SERVICE


@dataclass
class WorkerServiceManifest(WorkloadManifest):
    count: int = 1
    subscriptions: List[TopicSubscription] = field(default_factory=list)
    queue: SQSQueue = field(default_factory=SQSQueue)

    workload_type = WorkloadType.WORKER_SERVICE


@dataclass
class ScheduledJobManifest(WorkloadManifest):
    schedule: str = "none"
    retries: int = 0
    timeout: Optional[str] = None

    workload_type = WorkloadType.SCHEDULED_JOB


# ============================================
# ENVIRONMENT
# ============================================

@dataclass
class EnvironmentNetwork:
    vpc_cidr: Optional[str] = None
    public_subnet_cidrs: List[str] = field(default_factory=list)
    private_subnet_cidrs: List[str] = field(default_factory=list)


@dataclass
class EnvironmentManifest:
    name: str
    network: EnvironmentNetwork = field(default_factory=EnvironmentNetwork)
    public_certificates: List[str] = field(default_factory=list)
    private_certificates: List[str] = field(default_factory=list)
    container_insights: Optional[bool] = None
    cdn_enabled: Optional[bool] = None
    raw_manifest: str = field(default="", repr=False, compare=False)

    workload_type = WorkloadType.ENVIRONMENT


AnyManifest = Union[
    BackendServiceManifest,
    WorkerServiceManifest,
    ScheduledJobManifest,
    EnvironmentManifest,
]
