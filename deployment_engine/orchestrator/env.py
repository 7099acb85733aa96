# deployment_engine/orchestrator/env.py
"""Environment deployer."""

import logging
from typing import Dict, Optional

from deployment_engine.artifacts import custom_resources as cr
from deployment_engine.artifacts.pipeline import PHASE_CUSTOM_RESOURCES, ArtifactUploadPipeline
from deployment_engine.core.models import (
    DeployEnvironmentInput,
    UploadArtifactsInput,
    UploadArtifactsOutput,
)
from deployment_engine.core.naming import stack_name_for_env
from deployment_engine.manifest.models import EnvironmentManifest, WorkloadType
from deployment_engine.orchestrator.workload import Deployer
from deployment_engine.stack.base import StackConfiguration
from deployment_engine.stack.env import new_force_update_id

logger = logging.getLogger(__name__)


class EnvironmentDeployer(Deployer):
    """
    Deploys the shared environment stack.

    Previous parameters and the force-update marker are read from the
    deployed stack right before the configuration is built, so concurrent
    workload deploys that changed managed parameters are not overwritten.
    """

    workload_type = WorkloadType.ENVIRONMENT
    deploy_context = "deploy environment"

    @classmethod
    def manifest_class(cls) -> type:
        return EnvironmentManifest

    @property
    def stack_name(self) -> str:
        return stack_name_for_env(self.app.name, self.env.name)

    def upload_artifacts(self, inp: Optional[UploadArtifactsInput] = None) -> UploadArtifactsOutput:
        reader = self.deps.custom_resources
        if reader is None:
            return UploadArtifactsOutput()
        bucket = self.resources.get().s3_bucket

        def run() -> UploadArtifactsOutput:
            resources = reader.read(self.workload_type)
            return UploadArtifactsOutput(
                custom_resource_urls=cr.upload_custom_resources(resources, self.deps.uploader, bucket)
            )

        pipeline = ArtifactUploadPipeline(max_workers=1)
        pipeline.add(PHASE_CUSTOM_RESOURCES, run)
        return pipeline.run()

    def _artifact_locations(self, inp: DeployEnvironmentInput) -> Dict[str, str]:
        return UploadArtifactsOutput(custom_resource_urls=inp.custom_resource_urls).locations()

    def _build(self, inp: DeployEnvironmentInput, require_images: bool) -> StackConfiguration:
        self.validate()

        stack_client = self.deps.stack_client
        previous = stack_client.deployed_parameters(self.stack_name)
        last_force_id = stack_client.force_update_output_id(self.stack_name)
        force_id = new_force_update_id(inp.force_new_update, last_force_id)
        if inp.force_new_update:
            logger.info(f"[env] forcing update of {self.stack_name} ({force_id})")

        return self.factory.for_environment(
            self.app,
            self.env,
            self.manifest,
            previous_parameters=previous,
            force_update_id=force_id,
            root_user_arn=inp.root_user_arn,
            permissions_boundary=inp.permissions_boundary,
            custom_resource_urls=inp.custom_resource_urls,
        )
