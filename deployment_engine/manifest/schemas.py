"""Pydantic schemas for raw manifest documents."""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from deployment_engine.manifest.models import (
    BackendServiceManifest,
    DockerBuildArgs,
    EnvironmentManifest,
    EnvironmentNetwork,
    HTTPConfig,
    ImageConfig,
    RoutingRule,
    ScheduledJobManifest,
    SidecarConfig,
    SQSQueue,
    TopicSubscription,
    WorkerServiceManifest,
    WorkloadType,
)


# ============================================
# Shared blocks
# ============================================

class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore")


class BuildSchema(_Schema):
    dockerfile: Optional[str] = None
    context: Optional[str] = None
    args: Dict[str, str] = Field(default_factory=dict)
    target: Optional[str] = None
    cache_from: List[str] = Field(default_factory=list)


class ImageSchema(_Schema):
    # A bare string is the path to a Dockerfile
    build: Optional[Union[str, BuildSchema]] = None
    location: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)

    def to_config(self) -> ImageConfig:
        build = None
        if isinstance(self.build, str):
            build = DockerBuildArgs(dockerfile=self.build)
        elif self.build is not None:
            build = DockerBuildArgs(
                dockerfile=self.build.dockerfile,
                context=self.build.context,
                args=dict(self.build.args),
                target=self.build.target,
                cache_from=list(self.build.cache_from),
            )
        return ImageConfig(build=build, location=self.location, port=self.port)


class SidecarSchema(_Schema):
    image: Optional[str] = None
    build: Optional[Union[str, BuildSchema]] = None
    port: Optional[int] = None
    env_file: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    essential: bool = True

    def to_config(self) -> SidecarConfig:
        image = ImageSchema(build=self.build, location=self.image).to_config()
        return SidecarConfig(
            image=image,
            port=self.port,
            env_file=self.env_file,
            variables=dict(self.variables),
            essential=self.essential,
        )


class RoutingRuleSchema(_Schema):
    path: Optional[str] = None
    alias: List[str] = Field(default_factory=list)
    target_container: Optional[str] = None
    target_port: Optional[int] = None
    healthcheck: Optional[str] = None

    @field_validator("alias", mode="before")
    @classmethod
    def _alias_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def to_rule(self) -> RoutingRule:
        return RoutingRule(
            path=self.path,
            alias=list(self.alias),
            target_container=self.target_container,
            target_port=self.target_port,
            healthcheck_path=self.healthcheck,
        )


class HTTPSchema(RoutingRuleSchema):
    additional_rules: List[RoutingRuleSchema] = Field(default_factory=list)

    def to_config(self) -> HTTPConfig:
        return HTTPConfig(
            main=self.to_rule(),
            additional_rules=[r.to_rule() for r in self.additional_rules],
        )


class QueueSchema(_Schema):
    retention: Optional[int] = None
    delay: Optional[int] = None
    timeout: Optional[int] = None
    dead_letter_tries: Optional[int] = Field(default=None, ge=0, le=1000)
    fifo: bool = False

    def to_queue(self) -> SQSQueue:
        return SQSQueue(
            retention_seconds=self.retention,
            delay_seconds=self.delay,
            timeout_seconds=self.timeout,
            dead_letter_tries=self.dead_letter_tries,
            fifo=self.fifo,
        )


class TopicSubscriptionSchema(_Schema):
    name: str
    service: str
    # true requests a dedicated queue with default settings
    queue: Optional[Union[bool, QueueSchema]] = None

    def to_subscription(self) -> TopicSubscription:
        queue = None
        if isinstance(self.queue, QueueSchema):
            queue = self.queue.to_queue()
        elif self.queue is True:
            queue = SQSQueue()
        return TopicSubscription(name=self.name, service=self.service, queue=queue)


class SubscribeSchema(_Schema):
    topics: List[TopicSubscriptionSchema] = Field(default_factory=list)
    queue: QueueSchema = Field(default_factory=QueueSchema)


# ============================================
# Workloads
# ============================================

class WorkloadSchema(_Schema):
    name: str = Field(min_length=1)
    type: str
    image: ImageSchema = Field(default_factory=ImageSchema)
    cpu: int = Field(default=256, gt=0)
    memory: int = Field(default=512, gt=0)
    platform: str = "linux/x86_64"
    variables: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, str] = Field(default_factory=dict)
    env_file: Optional[str] = None
    sidecars: Dict[str, SidecarSchema] = Field(default_factory=dict)

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify(cls, v):
        if isinstance(v, dict):
            return {k: str(val) for k, val in v.items()}
        return v

    def _common(self) -> dict:
        return dict(
            name=self.name,
            image=self.image.to_config(),
            cpu=self.cpu,
            memory=self.memory,
            platform=self.platform,
            variables=dict(self.variables),
            secrets=dict(self.secrets),
            env_file=self.env_file,
            sidecars={k: s.to_config() for k, s in self.sidecars.items()},
        )


class BackendServiceSchema(WorkloadSchema):
    count: int = Field(default=1, ge=0)
    http: HTTPSchema = Field(default_factory=HTTPSchema)

    def to_manifest(self) -> BackendServiceManifest:
        return BackendServiceManifest(count=self.count, http=self.http.to_config(), **self._common())


class WorkerServiceSchema(WorkloadSchema):
    count: int = Field(default=1, ge=0)
    subscribe: SubscribeSchema = Field(default_factory=SubscribeSchema)

    def to_manifest(self) -> WorkerServiceManifest:
        return WorkerServiceManifest(
            count=self.count,
            subscriptions=[t.to_subscription() for t in self.subscribe.topics],
            queue=self.subscribe.queue.to_queue(),
            **self._common(),
        )


class JobTriggerSchema(_Schema):
    schedule: str = "none"


class ScheduledJobSchema(WorkloadSchema):
    on: JobTriggerSchema = Field(default_factory=JobTriggerSchema)
    retries: int = Field(default=0, ge=0, le=10)
    timeout: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _yaml_on_key(cls, data):
        # YAML 1.1 loads a bare `on` key as the boolean true
        if isinstance(data, dict) and True in data and "on" not in data:
            data = dict(data)
            data["on"] = data.pop(True)
        return data

    def to_manifest(self) -> ScheduledJobManifest:
        return ScheduledJobManifest(
            schedule=self.on.schedule,
            retries=self.retries,
            timeout=self.timeout,
            **self._common(),
        )


# ============================================
# Environment
# ============================================

class VPCSchema(_Schema):
    cidr: Optional[str] = None
    public_subnets: List[str] = Field(default_factory=list)
    private_subnets: List[str] = Field(default_factory=list)


class NetworkSchema(_Schema):
    vpc: VPCSchema = Field(default_factory=VPCSchema)


class CertificatesSchema(_Schema):
    certificates: List[str] = Field(default_factory=list)


class EnvHTTPSchema(_Schema):
    public: CertificatesSchema = Field(default_factory=CertificatesSchema)
    private: CertificatesSchema = Field(default_factory=CertificatesSchema)


class ObservabilitySchema(_Schema):
    container_insights: Optional[bool] = None


class EnvironmentSchema(_Schema):
    name: str = Field(min_length=1)
    type: str
    network: NetworkSchema = Field(default_factory=NetworkSchema)
    http: EnvHTTPSchema = Field(default_factory=EnvHTTPSchema)
    observability: ObservabilitySchema = Field(default_factory=ObservabilitySchema)
    cdn: Optional[bool] = None

    def to_manifest(self) -> EnvironmentManifest:
        return EnvironmentManifest(
            name=self.name,
            network=EnvironmentNetwork(
                vpc_cidr=self.network.vpc.cidr,
                public_subnet_cidrs=list(self.network.vpc.public_subnets),
                private_subnet_cidrs=list(self.network.vpc.private_subnets),
            ),
            public_certificates=list(self.http.public.certificates),
            private_certificates=list(self.http.private.certificates),
            container_insights=self.observability.container_insights,
            cdn_enabled=self.cdn,
        )


SCHEMAS_BY_TYPE = {
    WorkloadType.BACKEND_SERVICE: BackendServiceSchema,
    WorkloadType.WORKER_SERVICE: WorkerServiceSchema,
    WorkloadType.SCHEDULED_JOB: ScheduledJobSchema,
    WorkloadType.ENVIRONMENT: EnvironmentSchema,
}
