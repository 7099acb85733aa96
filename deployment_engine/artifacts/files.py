# deployment_engine/artifacts/files.py
"""Env files and the addons template."""

import logging
import os
from typing import Dict, List, Optional

from deployment_engine.artifacts.addons import AddonsPackager
from deployment_engine.core import artifactpath
from deployment_engine.core.clients import Uploader
from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.core.models import UploadArtifactsOutput
from deployment_engine.core.naming import partition_for_region

logger = logging.getLogger(__name__)


def upload_env_files(
    env_files: Dict[str, str],
    workspace: str,
    uploader: Uploader,
    bucket: str,
    region: str,
) -> Dict[str, str]:
    """
    Upload each distinct env file once.

    ``env_files`` maps container name -> path relative to the workspace.
    Returns container name -> object ARN for every container.
    """
    by_path: Dict[str, List[str]] = {}
    for container, path in sorted(env_files.items()):
        by_path.setdefault(path, []).append(container)

    partition = partition_for_region(region)
    arns: Dict[str, str] = {}
    for path, containers in by_path.items():
        abs_path = os.path.join(workspace, path)
        try:
            with open(abs_path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise DeployConfigurationError(str(e), [f"read env file {path}"]) from e

        key = artifactpath.env_file(path, content)
        uploader.upload(bucket, key, content)
        arn = artifactpath.object_arn(partition, bucket, key)
        logger.debug(f"[files] uploaded env file {path} for {', '.join(containers)}")
        for container in containers:
            arns[container] = arn
    return arns


def upload_addons(
    packager: Optional[AddonsPackager],
    workload: str,
    uploader: Uploader,
    bucket: str,
) -> UploadArtifactsOutput:
    out = UploadArtifactsOutput()
    if packager is None:
        return out
    package = packager.package(workload)
    if package is None:
        return out
    body = package.template.encode("utf-8")
    key = artifactpath.addons(workload, body)
    out.addons_url = uploader.upload(bucket, key, body)
    out.addons_parameters = dict(package.parameters)
    return out
