# deployment_engine/artifacts/custom_resources.py
"""Custom resource handlers: discovery, packaging and upload."""

import io
import logging
import os
import zipfile
from typing import Dict, List, Tuple

from deployment_engine.core import artifactpath
from deployment_engine.core.clients import Uploader
from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.manifest.models import WorkloadType

logger = logging.getLogger(__name__)

# Handler file name inside every uploaded zip
HANDLER_FILE = "index.js"

# Fixed timestamp so identical handlers zip to identical bytes
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

CUSTOM_RESOURCES_BY_TYPE: Dict[WorkloadType, Tuple[str, ...]] = {
    WorkloadType.BACKEND_SERVICE: (
        "DynamicDesiredCountFunction",
        "RulePriorityFunction",
        "EnvControllerFunction",
    ),
    WorkloadType.WORKER_SERVICE: (
        "DynamicDesiredCountFunction",
        "BacklogPerTaskCalculatorFunction",
        "EnvControllerFunction",
    ),
    WorkloadType.SCHEDULED_JOB: (
        "EnvControllerFunction",
    ),
    WorkloadType.ENVIRONMENT: (
        "CertificateValidationFunction",
        "CustomDomainFunction",
        "DNSDelegationFunction",
    ),
}


class CustomResource:
    """One handler source file."""

    def __init__(self, name: str, source: bytes):
        self.name = name
        self.source = source

    def zip(self) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            info = zipfile.ZipInfo(HANDLER_FILE, date_time=_ZIP_EPOCH)
            info.external_attr = 0o644 << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, self.source)
        return buf.getvalue()


class CustomResourceReader:
    """Reads handler sources from ``<root>/<FunctionName>.js``."""

    def __init__(self, root: str):
        self._root = root

    def read(self, workload_type: WorkloadType) -> List[CustomResource]:
        names = CUSTOM_RESOURCES_BY_TYPE.get(workload_type, ())
        resources = []
        for name in names:
            path = os.path.join(self._root, f"{name}.js")
            try:
                with open(path, "rb") as f:
                    resources.append(CustomResource(name, f.read()))
            except OSError as e:
                raise DeployConfigurationError(
                    str(e), [f"read custom resource {name}"]
                ) from e
        return resources


def upload_custom_resources(
    resources: List[CustomResource],
    uploader: Uploader,
    bucket: str,
) -> Dict[str, str]:
    """Zip and upload each handler. Returns function name -> object URL."""
    urls: Dict[str, str] = {}
    for resource in resources:
        zipped = resource.zip()
        key = artifactpath.custom_resource(resource.name, zipped)
        urls[resource.name] = uploader.upload(bucket, key, zipped)
        logger.debug(f"[custom-resources] uploaded {resource.name} to {key}")
    return urls
