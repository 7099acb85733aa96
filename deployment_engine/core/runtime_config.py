# deployment_engine/core/runtime_config.py
"""Builds the per-deploy RuntimeConfig. Pure: no I/O, no side effects."""

from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.core.models import (
    ContainerImageIdentifier,
    Environment,
    PushedImage,
    RegionalResources,
    RuntimeConfig,
)


def _frozen(mapping: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


def build_runtime_config(
    workload_name: str,
    environment: Environment,
    resources: RegionalResources,
    env_version: str,
    service_discovery_endpoint: str,
    image_digests: Optional[Mapping[str, ContainerImageIdentifier]] = None,
    built_containers: Iterable[str] = (),
    cpu: int = 256,
    memory: int = 512,
    count: int = 1,
    addons_template_url: str = "",
    addons_parameters: Optional[Mapping[str, str]] = None,
    env_file_arns: Optional[Mapping[str, str]] = None,
    custom_resources_urls: Optional[Mapping[str, str]] = None,
    additional_tags: Optional[Mapping[str, str]] = None,
    require_images: bool = True,
) -> RuntimeConfig:
    """
    Combine manifest sizing, regional resources and uploaded artifacts.

    Main container is tagged with the custom tag when one was given, sidecars
    always with the git short commit. With ``require_images`` every locally
    built container must have a pushed digest.
    """
    digests = dict(image_digests or {})
    pushed: Dict[str, PushedImage] = {}

    for container in built_containers:
        image = digests.get(container)
        if image is None or not image.digest:
            if require_images:
                raise DeployConfigurationError(
                    f"no pushed image digest for container {container}"
                )
            continue

        repo_url = resources.repository_urls.get(workload_name, "")
        if container == workload_name:
            tag = image.tag
        else:
            tag = image.git_short_commit_tag

        pushed[container] = PushedImage(
            repo_url=repo_url,
            image_tag=tag,
            digest=image.digest,
            main_container_name=workload_name,
            container_name=container,
        )

    return RuntimeConfig(
        account_id=environment.account_id,
        region=environment.region,
        env_version=env_version,
        service_discovery_endpoint=service_discovery_endpoint,
        cpu=cpu,
        memory=memory,
        count=count,
        pushed_images=MappingProxyType(pushed),
        env_file_arns=_frozen(env_file_arns),
        addons_template_url=addons_template_url,
        addons_parameters=_frozen(addons_parameters),
        custom_resources_urls=_frozen(custom_resources_urls),
        additional_tags=_frozen(additional_tags),
    )
