# deployment_engine/orchestrator/service.py
"""Deployment service - validate, upload and deploy one manifest."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from deployment_engine.core.models import (
    Application,
    DeployEnvironmentInput,
    DeploymentRecord,
    DeployWorkloadInput,
    Environment,
    GenerateTemplateOutput,
    Options,
    StackRuntimeConfiguration,
    UploadArtifactsInput,
    UploadArtifactsOutput,
)
from deployment_engine.manifest.models import WorkloadType
from deployment_engine.orchestrator.workload import Deployer

logger = logging.getLogger(__name__)


@dataclass
class DeployParams:
    """Caller-supplied knobs for one deploy."""
    custom_tag: str = ""
    git_short_commit: str = ""
    disable_rollback: bool = False
    force_new_update: bool = False
    root_user_arn: str = ""
    permissions_boundary: str = ""
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class DeployResult:
    record: DeploymentRecord
    recommended_actions: List[str]
    artifacts: Dict[str, str]


DeployerFactory = Callable[[Application, Environment, object], Deployer]


class DeploymentService:
    """Runs the full deploy sequence for a parsed manifest."""

    def __init__(self, deployer_factory: DeployerFactory):
        self._new_deployer = deployer_factory

    # -------------------------
    # INPUTS
    # -------------------------

    @staticmethod
    def _input(deployer: Deployer, uploaded: UploadArtifactsOutput, params: DeployParams):
        options = Options(
            disable_rollback=params.disable_rollback,
            force_new_update=params.force_new_update,
        )
        if deployer.workload_type == WorkloadType.ENVIRONMENT:
            return DeployEnvironmentInput(
                root_user_arn=params.root_user_arn,
                custom_resource_urls=dict(uploaded.custom_resource_urls),
                force_new_update=params.force_new_update,
                permissions_boundary=params.permissions_boundary,
                options=options,
            )
        runtime = StackRuntimeConfiguration.from_upload(
            uploaded,
            root_user_arn=params.root_user_arn,
            tags=dict(params.tags),
        )
        return DeployWorkloadInput(runtime=runtime, options=options)

    # -------------------------
    # TEMPLATE
    # -------------------------

    def generate_template(
        self,
        app: Application,
        env: Environment,
        manifest,
        params: DeployParams,
    ) -> GenerateTemplateOutput:
        """Render without uploading artifacts or touching the stack."""
        deployer = self._new_deployer(app, env, manifest)
        deployer.validate()
        return deployer.generate_template(self._input(deployer, UploadArtifactsOutput(), params))

    # -------------------------
    # DEPLOY
    # -------------------------

    def deploy(
        self,
        app: Application,
        env: Environment,
        manifest,
        params: DeployParams,
    ) -> DeployResult:
        deployer = self._new_deployer(app, env, manifest)

        # Cheap checks first so a bad manifest uploads nothing
        deployer.validate()

        uploaded = deployer.upload_artifacts(
            UploadArtifactsInput(custom_tag=params.custom_tag, git_short_commit=params.git_short_commit)
        )
        recommender = deployer.deploy(self._input(deployer, uploaded, params))

        actions = recommender.recommended_actions()
        for action in actions:
            logger.info(f"[deploy] recommended: {action}")

        return DeployResult(
            record=deployer.last_record,
            recommended_actions=actions,
            artifacts=uploaded.locations(),
        )
