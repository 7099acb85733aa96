# deployment_engine/orchestrator/workload.py
"""Deploy sequencer shared by every workload deployer."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from deployment_engine.artifacts import custom_resources as cr
from deployment_engine.artifacts.addons import AddonsPackager
from deployment_engine.artifacts.files import upload_addons, upload_env_files
from deployment_engine.artifacts.images import build_and_push_images
from deployment_engine.artifacts.pipeline import (
    PHASE_CUSTOM_RESOURCES,
    PHASE_FILES,
    PHASE_IMAGES,
    ArtifactUploadPipeline,
)
from deployment_engine.core.clients import (
    AliasCertValidator,
    ImageBuilderPusher,
    RegionalResourcesGetter,
    ServiceForceUpdater,
    StackClient,
    TopicLister,
    Uploader,
)
from deployment_engine.core.errors import (
    DeployConfigurationError,
    DeployError,
    EmptyChangeSetError,
    ManifestTypeError,
    StackApplyError,
)
from deployment_engine.core.events import EventEmitter, NullEventEmitter
from deployment_engine.core.events_model import DeployEvent
from deployment_engine.core.models import (
    Application,
    DeployWorkloadInput,
    DeploymentRecord,
    Environment,
    GenerateTemplateOutput,
    RuntimeConfig,
    StackApplyOptions,
    UploadArtifactsInput,
    UploadArtifactsOutput,
)
from deployment_engine.core.naming import service_discovery_endpoint, stack_name_for_env
from deployment_engine.core.resources import RegionalResourceCache
from deployment_engine.core.runtime_config import build_runtime_config
from deployment_engine.manifest.models import WorkloadType
from deployment_engine.orchestrator.recommend import ActionRecommender, NoopActionRecommender
from deployment_engine.stack.base import StackConfiguration
from deployment_engine.stack.env import SERVICE_DISCOVERY_KEY
from deployment_engine.stack.factory import StackConfigurationFactory
from deployment_engine.stack.override import Overrider
from deployment_engine.stack.renderer import TemplateRenderer

logger = logging.getLogger(__name__)


def _error_kind(err: Exception) -> Optional[str]:
    return err.kind.value if isinstance(err, DeployError) else None


@dataclass
class DeployerDependencies:
    """External collaborators handed to every deployer."""

    uploader: Uploader
    regional_resources: RegionalResourcesGetter
    stack_client: StackClient
    image_builder: Optional[ImageBuilderPusher] = None
    custom_resources: Optional[cr.CustomResourceReader] = None
    addons: Optional[AddonsPackager] = None
    topic_lister: Optional[TopicLister] = None
    cert_validator: Optional[AliasCertValidator] = None
    overrider: Optional[Overrider] = None
    renderer: Optional[TemplateRenderer] = None
    service_updater: Optional[ServiceForceUpdater] = None
    emitter: EventEmitter = field(default_factory=NullEventEmitter)
    workspace: str = "."
    upload_workers: int = 3
    builder_labels: Dict[str, str] = field(default_factory=dict)


class Deployer(ABC):
    """
    Sequencer for one deploy target.

    deploy(): build runtime config -> validate -> build stack configuration
    -> apply -> recommend. Every step before apply is free of mutation.
    """

    workload_type: WorkloadType = None
    deploy_context = "deploy"

    def __init__(self, app: Application, env: Environment, manifest, deps: DeployerDependencies):
        expected = self.manifest_class()
        if not isinstance(manifest, expected):
            actual = getattr(manifest, "workload_type", None)
            raise ManifestTypeError(
                self.workload_type.value,
                actual.value if actual is not None else type(manifest).__name__,
            )
        self.app = app
        self.env = env
        self.manifest = manifest
        self.deps = deps
        self.resources = RegionalResourceCache(deps.regional_resources, app.name, env.region)
        self.factory = StackConfigurationFactory(overrider=deps.overrider, renderer=deps.renderer)
        self.last_record: Optional[DeploymentRecord] = None

    @classmethod
    @abstractmethod
    def manifest_class(cls) -> type:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return self.manifest.name

    # -------------------------
    # Validation
    # -------------------------

    def validate(self) -> None:
        """Checks that need no artifacts. Safe to call before uploading."""
        pass

    # -------------------------
    # Records / events
    # -------------------------

    def _new_record(self) -> DeploymentRecord:
        record = DeploymentRecord(
            app_name=self.app.name,
            env_name=self.env.name,
            workload_name=self.name,
            workload_type=self.workload_type.value,
        )
        self.last_record = record
        self.deps.emitter.emit([DeployEvent.deploy_started(record)])
        return record

    def _reject(self, record: DeploymentRecord, err: Exception) -> None:
        logger.info(f"[deploy] {self.name} rejected: {err}")
        record.rejected(str(err), _error_kind(err))
        self.deps.emitter.emit([DeployEvent.deploy_rejected(record)])

    def _fail(self, record: DeploymentRecord, err: Exception) -> None:
        logger.error(f"[deploy] {self.name} failed: {err}")
        record.failed(str(err), _error_kind(err))
        self.deps.emitter.emit([DeployEvent.deploy_failed(record)])

    # -------------------------
    # Sequencing
    # -------------------------

    @abstractmethod
    def _build(self, inp, require_images: bool) -> StackConfiguration:
        raise NotImplementedError

    def _apply_options(self, inp) -> StackApplyOptions:
        return StackApplyOptions(
            role_arn=self.env.execution_role_arn,
            disable_rollback=inp.options.disable_rollback,
        )

    def _force_update(self, inp, started_at: datetime) -> None:
        pass

    def _recommender(self) -> ActionRecommender:
        return NoopActionRecommender()

    def _artifact_locations(self, inp) -> Dict[str, str]:
        return {}

    def generate_template(self, inp) -> GenerateTemplateOutput:
        """Same steps as deploy() without applying."""
        conf = self._build(inp, require_images=False)
        return GenerateTemplateOutput(
            template=conf.template(),
            parameters=conf.serialized_parameters(),
        )

    def deploy(self, inp) -> ActionRecommender:
        record = self._new_record()
        locations = self._artifact_locations(inp)
        if locations:
            self.deps.emitter.emit([DeployEvent.artifacts_uploaded(record, locations)])

        try:
            conf = self._build(inp, require_images=True)
        except Exception as e:
            self._reject(record, e)
            raise

        record.validated()
        self.deps.emitter.emit([DeployEvent.deploy_validated(record)])

        try:
            template = conf.template()
            parameters = conf.parameters()
            bucket = self.resources.get().s3_bucket
        except Exception as e:
            self._fail(record, e)
            raise

        record.applying()
        logger.info(f"[deploy] applying stack {conf.stack_name}")
        started_at = datetime.now(timezone.utc)
        try:
            self.deps.stack_client.deploy(
                conf.stack_name,
                template,
                parameters,
                conf.tags(),
                bucket,
                self._apply_options(inp),
            )
        except EmptyChangeSetError:
            logger.info(f"[deploy] no changes to stack {conf.stack_name}")
        except DeployError as e:
            self._fail(record, e)
            raise e.wrap(self.deploy_context)
        except Exception as e:
            self._fail(record, e)
            raise StackApplyError(str(e), [self.deploy_context]) from e

        try:
            self._force_update(inp, started_at)
        except DeployError as e:
            self._fail(record, e)
            raise

        recommender = self._recommender()
        record.applied(recommender.recommended_actions())
        self.deps.emitter.emit([DeployEvent.deploy_applied(record)])
        logger.info(f"[deploy] ✅ {self.name} deployed to {self.env.name}")
        return recommender


class WorkloadDeployer(Deployer):
    """Container-based workloads: backend services, workers and jobs."""

    # Backed by a long-running service that can be force updated
    runs_service = False

    def _builds(self):
        return self.manifest.build_args(self.deps.workspace)

    # -------------------------
    # Upload
    # -------------------------

    def _images_phase(self, inp: UploadArtifactsInput):
        builds = self._builds()
        if not builds or self.deps.image_builder is None:
            return None

        def run() -> UploadArtifactsOutput:
            repo_url = self.resources.get().repository_urls.get(self.name, "")
            digests = build_and_push_images(
                builds,
                main_container=self.name,
                repo_url=repo_url,
                builder=self.deps.image_builder,
                custom_tag=inp.custom_tag,
                commit=inp.git_short_commit,
                platform=self.manifest.container_platform(),
                labels=self.deps.builder_labels,
            )
            return UploadArtifactsOutput(image_digests=digests)

        return run

    def _custom_resources_phase(self):
        reader = self.deps.custom_resources
        if reader is None:
            return None

        def run() -> UploadArtifactsOutput:
            resources = reader.read(self.workload_type)
            urls = cr.upload_custom_resources(resources, self.deps.uploader, self.resources.get().s3_bucket)
            return UploadArtifactsOutput(custom_resource_urls=urls)

        return run

    def _files_phase(self):
        def run() -> UploadArtifactsOutput:
            bucket = self.resources.get().s3_bucket
            out = upload_addons(self.deps.addons, self.name, self.deps.uploader, bucket)
            out.env_file_arns = upload_env_files(
                self.manifest.env_files(),
                self.deps.workspace,
                self.deps.uploader,
                bucket,
                self.env.region,
            )
            return out

        return run

    def upload_artifacts(self, inp: Optional[UploadArtifactsInput] = None) -> UploadArtifactsOutput:
        inp = inp or UploadArtifactsInput()
        # Resolve the bucket once before the phases start
        self.resources.get()

        pipeline = ArtifactUploadPipeline(max_workers=self.deps.upload_workers)
        pipeline.add(PHASE_IMAGES, self._images_phase(inp))
        pipeline.add(PHASE_CUSTOM_RESOURCES, self._custom_resources_phase())
        pipeline.add(PHASE_FILES, self._files_phase())
        out = pipeline.run()

        logger.info(f"[artifacts] uploaded {len(out.locations())} artifact(s) for {self.name}")
        return out

    # -------------------------
    # Build
    # -------------------------

    def _env_discovery_endpoint(self) -> str:
        env_stack = stack_name_for_env(self.app.name, self.env.name)
        for p in self.deps.stack_client.deployed_parameters(env_stack):
            if p.key == SERVICE_DISCOVERY_KEY and p.value:
                return p.value
        return service_discovery_endpoint(self.app.name, self.env.name)

    def _artifact_locations(self, inp: DeployWorkloadInput) -> Dict[str, str]:
        runtime = inp.runtime
        return UploadArtifactsOutput(
            image_digests=runtime.image_digests,
            env_file_arns=runtime.env_file_arns,
            addons_url=runtime.addons_url,
            custom_resource_urls=runtime.custom_resource_urls,
        ).locations()

    def _desired_count(self) -> int:
        return getattr(self.manifest, "count", 1)

    def runtime_config(self, inp: DeployWorkloadInput, require_images: bool) -> RuntimeConfig:
        resources = self.resources.get()
        env_stack = stack_name_for_env(self.app.name, self.env.name)
        tags = dict(inp.runtime.tags)
        return build_runtime_config(
            workload_name=self.name,
            environment=self.env,
            resources=resources,
            env_version=self.deps.stack_client.environment_version(env_stack),
            service_discovery_endpoint=self._env_discovery_endpoint(),
            image_digests=inp.runtime.image_digests,
            built_containers=list(self._builds()),
            cpu=self.manifest.cpu,
            memory=self.manifest.memory,
            count=self._desired_count(),
            addons_template_url=inp.runtime.addons_url,
            addons_parameters=inp.runtime.addons_parameters,
            env_file_arns=inp.runtime.env_file_arns,
            custom_resources_urls=inp.runtime.custom_resource_urls,
            additional_tags=tags,
            require_images=require_images,
        )

    def _force_update(self, inp: DeployWorkloadInput, started_at: datetime) -> None:
        """
        Roll the service onto new tasks when a forced update was requested
        and the stack apply did not already redeploy it.
        """
        if not inp.options.force_new_update or not self.runs_service:
            return

        updater = self.deps.service_updater
        if updater is None:
            raise DeployConfigurationError(
                "a forced update was requested but no service updater is configured",
                [f"force an update for service {self.name}"],
            )

        try:
            last_updated = updater.last_updated_at(self.app.name, self.env.name, self.name)
        except DeployError as e:
            raise e.wrap(f"get the last updated deployment time for {self.name}")
        if last_updated >= started_at:
            logger.info(f"[deploy] {self.name} was redeployed by the stack update")
            return

        logger.info(f"[deploy] forcing a new deployment of {self.name}")
        updater.force_update_service(self.app.name, self.env.name, self.name)

    def _build(self, inp: DeployWorkloadInput, require_images: bool) -> StackConfiguration:
        rc = self.runtime_config(inp, require_images)
        self.validate()
        return self.factory.for_workload(self.workload_type, self.app, self.env, self.manifest, rc)
