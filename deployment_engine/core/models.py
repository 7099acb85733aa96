"""Core deployment models (values shared by every workload type)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4


# ============================================
# APPLICATION / ENVIRONMENT
# ============================================

@dataclass(frozen=True)
class Application:
    """Application the workloads belong to."""
    name: str
    domain: str = ""
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EnvironmentHTTPConfig:
    """Certificates imported into the environment's load balancers."""
    public_certificates: Tuple[str, ...] = ()
    private_certificates: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Environment:
    """Deployment target."""
    name: str
    region: str
    account_id: str = ""
    manager_role_arn: str = ""
    execution_role_arn: str = ""
    http: EnvironmentHTTPConfig = field(default_factory=EnvironmentHTTPConfig)

    @property
    def imported_certificates(self) -> Tuple[str, ...]:
        """Certificates backing internal routing rules."""
        return self.http.private_certificates


@dataclass(frozen=True)
class RegionalResources:
    """Artifact bucket and key provisioned once per application per region."""
    region: str
    s3_bucket: str
    kms_key_arn: str = ""
    repository_urls: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Topic:
    """Pub-sub topic discovered in an environment."""
    name: str
    arn: str


@dataclass(frozen=True)
class StackParameter:
    key: str
    value: str


# ============================================
# IMAGES / RUNTIME CONFIG
# ============================================

@dataclass(frozen=True)
class ContainerImageIdentifier:
    """Digest and tags of a pushed image."""
    digest: str = ""
    custom_tag: str = ""
    git_short_commit_tag: str = ""

    @property
    def tag(self) -> str:
        if self.custom_tag:
            return self.custom_tag
        return self.git_short_commit_tag


@dataclass(frozen=True)
class PushedImage:
    repo_url: str
    image_tag: str
    digest: str
    main_container_name: str
    container_name: str

    def uri(self) -> str:
        """Image reference, pinned to the digest when one is known."""
        if self.digest:
            return f"{self.repo_url}@{self.digest}"
        if self.image_tag:
            return f"{self.repo_url}:{self.image_tag}"
        return f"{self.repo_url}:latest"


@dataclass(frozen=True)
class RuntimeConfig:
    """Computed facts needed to render a stack configuration."""
    account_id: str
    region: str
    env_version: str
    service_discovery_endpoint: str
    cpu: int = 256
    memory: int = 512
    count: int = 1
    pushed_images: Mapping[str, PushedImage] = field(default_factory=lambda: MappingProxyType({}))
    env_file_arns: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    addons_template_url: str = ""
    addons_parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    custom_resources_urls: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    additional_tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


# ============================================
# DEPLOY INPUTS / OUTPUTS
# ============================================

@dataclass
class UploadArtifactsOutput:
    """Combined result of the artifact upload phases."""
    image_digests: Dict[str, ContainerImageIdentifier] = field(default_factory=dict)
    env_file_arns: Dict[str, str] = field(default_factory=dict)
    addons_url: str = ""
    addons_parameters: Dict[str, str] = field(default_factory=dict)
    custom_resource_urls: Dict[str, str] = field(default_factory=dict)

    def merge(self, other: "UploadArtifactsOutput") -> None:
        """Fold the result of another phase into this one."""
        self.image_digests.update(other.image_digests)
        self.env_file_arns.update(other.env_file_arns)
        self.addons_url = other.addons_url or self.addons_url
        self.addons_parameters.update(other.addons_parameters)
        self.custom_resource_urls.update(other.custom_resource_urls)

    def locations(self) -> Dict[str, str]:
        """Flatten into logical artifact name -> resolved location."""
        out: Dict[str, str] = {}
        for container, image in self.image_digests.items():
            out[f"image/{container}"] = image.digest
        for container, arn in self.env_file_arns.items():
            out[f"env-file/{container}"] = arn
        if self.addons_url:
            out["addons"] = self.addons_url
        for fn, url in self.custom_resource_urls.items():
            out[f"custom-resource/{fn}"] = url
        return out


@dataclass
class StackRuntimeConfiguration:
    """Runtime inputs supplied by the caller for one workload deploy."""
    image_digests: Dict[str, ContainerImageIdentifier] = field(default_factory=dict)
    env_file_arns: Dict[str, str] = field(default_factory=dict)
    addons_url: str = ""
    addons_parameters: Dict[str, str] = field(default_factory=dict)
    root_user_arn: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    custom_resource_urls: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_upload(cls, out: UploadArtifactsOutput, **kwargs) -> "StackRuntimeConfiguration":
        return cls(
            image_digests=dict(out.image_digests),
            env_file_arns=dict(out.env_file_arns),
            addons_url=out.addons_url,
            addons_parameters=dict(out.addons_parameters),
            custom_resource_urls=dict(out.custom_resource_urls),
            **kwargs,
        )


@dataclass(frozen=True)
class UploadArtifactsInput:
    """Image tagging inputs for the images phase."""
    custom_tag: str = ""
    git_short_commit: str = ""


@dataclass(frozen=True)
class Options:
    """Caller options for one apply. force_new_update also rolls services with no stack change."""
    disable_rollback: bool = False
    force_new_update: bool = False


@dataclass
class DeployWorkloadInput:
    runtime: StackRuntimeConfiguration = field(default_factory=StackRuntimeConfiguration)
    options: Options = field(default_factory=Options)


@dataclass
class DeployEnvironmentInput:
    root_user_arn: str = ""
    custom_resource_urls: Dict[str, str] = field(default_factory=dict)
    force_new_update: bool = False
    permissions_boundary: str = ""
    options: Options = field(default_factory=Options)


@dataclass(frozen=True)
class GenerateTemplateOutput:
    template: str
    parameters: str


@dataclass(frozen=True)
class StackApplyOptions:
    """Identities and flags handed to the apply client."""
    role_arn: str = ""
    disable_rollback: bool = False


# ============================================
# DEPLOYMENT RECORD
# ============================================

class DeploymentState(Enum):
    """Deploy sequencer state machine."""

    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    APPLYING = "APPLYING"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


TERMINAL_STATES = {DeploymentState.APPLIED, DeploymentState.REJECTED, DeploymentState.FAILED}


@dataclass
class DeploymentRecord:
    """One deploy operation of one workload."""

    app_name: str
    env_name: str
    workload_name: str
    workload_type: str
    deployment_id: UUID = field(default_factory=uuid4)

    state: DeploymentState = DeploymentState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    recommended_actions: List[str] = field(default_factory=list)

    # -------------------------
    # STATE TRANSITIONS
    # -------------------------

    def validated(self) -> None:
        """PENDING -> VALIDATED."""
        if self.state != DeploymentState.PENDING:
            raise ValueError(f"Cannot validate from {self.state.value} state")
        self.state = DeploymentState.VALIDATED

    def applying(self) -> None:
        """VALIDATED -> APPLYING. No longer cancelable after this point."""
        if self.state != DeploymentState.VALIDATED:
            raise ValueError(f"Cannot apply from {self.state.value} state")
        self.state = DeploymentState.APPLYING

    def applied(self, recommended_actions: Optional[List[str]] = None) -> None:
        """APPLYING -> APPLIED."""
        if self.state != DeploymentState.APPLYING:
            raise ValueError(f"Cannot complete from {self.state.value} state")
        self.state = DeploymentState.APPLIED
        self.recommended_actions = list(recommended_actions or [])
        self.finished_at = datetime.now(timezone.utc)

    def rejected(self, error_message: str, error_kind: Optional[str] = None) -> None:
        """
        PENDING -> REJECTED. Nothing was mutated. error_kind tells a
        validation failure (CONFIGURATION) from a failed lookup.
        """
        if self.state != DeploymentState.PENDING:
            raise ValueError(f"Cannot reject from {self.state.value} state")
        self.state = DeploymentState.REJECTED
        self.error_message = error_message
        self.error_kind = error_kind
        self.finished_at = datetime.now(timezone.utc)

    def failed(self, error_message: str, error_kind: Optional[str] = None) -> None:
        """Transition to FAILED."""
        if self.state not in (DeploymentState.VALIDATED, DeploymentState.APPLYING):
            raise ValueError(f"Cannot fail from {self.state.value} state")
        self.state = DeploymentState.FAILED
        self.error_message = error_message
        self.error_kind = error_kind
        self.finished_at = datetime.now(timezone.utc)

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
