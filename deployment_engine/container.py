#deployment_engine\container.py

"""Dependency injection container - wires collaborators into deployers."""

import os
from typing import Optional

from deployment_engine.artifacts.addons import AddonsPackager
from deployment_engine.artifacts.custom_resources import CustomResourceReader
from deployment_engine.artifacts.images import DockerImageBuilderPusher
from deployment_engine.config import DeploySettings, settings
from deployment_engine.core.events import LogEventEmitter, MultiEventEmitter
from deployment_engine.core.models import Application, Environment, RegionalResources
from deployment_engine.infrastructure.aws.acm import ACMAliasCertValidator
from deployment_engine.infrastructure.aws.cloudformation import (
    CloudFormationRegionalResourcesGetter,
    CloudFormationStackClient,
)
from deployment_engine.infrastructure.aws.ecs import ECSServiceForceUpdater
from deployment_engine.infrastructure.aws.s3 import S3Uploader
from deployment_engine.infrastructure.aws.session import SessionProvider
from deployment_engine.infrastructure.aws.sns import SNSTopicLister
from deployment_engine.infrastructure.memory.clients import (
    InMemoryAliasCertValidator,
    InMemoryImageBuilderPusher,
    InMemoryRegionalResourcesGetter,
    InMemoryServiceForceUpdater,
    InMemoryStackClient,
    InMemoryTopicLister,
    InMemoryUploader,
)
from deployment_engine.orchestrator.deployers import new_deployer
from deployment_engine.orchestrator.service import DeploymentService
from deployment_engine.orchestrator.workload import Deployer, DeployerDependencies
from deployment_engine.stack.override import Overrider, PatchOverrider


# ============================================
# SHARED
# ============================================

emitters = MultiEventEmitter([
    LogEventEmitter()
])


def _overrider(conf: DeploySettings) -> Optional[Overrider]:
    if conf.overrides_dir and os.path.isdir(conf.overrides_dir):
        return PatchOverrider(conf.overrides_dir)
    return None


def _custom_resources(conf: DeploySettings) -> Optional[CustomResourceReader]:
    if os.path.isdir(conf.custom_resources_dir):
        return CustomResourceReader(conf.custom_resources_dir)
    return None


# ============================================
# DEPENDENCIES
# ============================================

def aws_dependencies(env: Environment, conf: DeploySettings = settings) -> DeployerDependencies:
    """Collaborators backed by AWS, using the environment's manager role."""
    sessions = SessionProvider(profile=conf.aws_profile, default_region=conf.default_region)
    env_session = sessions.from_role(env.manager_role_arn, env.region)
    uploader = S3Uploader(env_session.client("s3"))

    return DeployerDependencies(
        uploader=uploader,
        regional_resources=CloudFormationRegionalResourcesGetter(
            lambda region: sessions.from_region(region).client("cloudformation")
        ),
        stack_client=CloudFormationStackClient(env_session.client("cloudformation"), uploader),
        image_builder=DockerImageBuilderPusher(),
        custom_resources=_custom_resources(conf),
        addons=AddonsPackager(conf.workspace),
        topic_lister=SNSTopicLister(env_session.client("sns")),
        cert_validator=ACMAliasCertValidator(env_session.client("acm")),
        service_updater=ECSServiceForceUpdater(
            env_session.client("ecs"),
            env_session.client("resourcegroupstaggingapi"),
        ),
        overrider=_overrider(conf),
        emitter=emitters,
        workspace=conf.workspace,
        upload_workers=conf.upload_workers,
        builder_labels=conf.builder_labels,
    )


def memory_dependencies(
    env: Environment,
    conf: DeploySettings = settings,
    workload: str = "",
) -> DeployerDependencies:
    """In-memory collaborators for dry runs."""
    repos = {workload: f"local.registry/{workload}"} if workload else {}
    return DeployerDependencies(
        uploader=InMemoryUploader(region=env.region),
        regional_resources=InMemoryRegionalResourcesGetter(
            RegionalResources(region=env.region, s3_bucket="local-artifacts", repository_urls=repos)
        ),
        stack_client=InMemoryStackClient(),
        image_builder=InMemoryImageBuilderPusher(),
        custom_resources=_custom_resources(conf),
        addons=AddonsPackager(conf.workspace),
        topic_lister=InMemoryTopicLister(),
        cert_validator=InMemoryAliasCertValidator(),
        service_updater=InMemoryServiceForceUpdater(),
        overrider=_overrider(conf),
        emitter=emitters,
        workspace=conf.workspace,
        upload_workers=conf.upload_workers,
        builder_labels=conf.builder_labels,
    )


def build_deployer(
    app: Application,
    env: Environment,
    manifest,
    conf: DeploySettings = settings,
) -> Deployer:
    if conf.backend == "memory":
        deps = memory_dependencies(env, conf, workload=manifest.name)
    else:
        deps = aws_dependencies(env, conf)
    return new_deployer(app, env, manifest, deps)


# Singletons
deployment_service = DeploymentService(build_deployer)
