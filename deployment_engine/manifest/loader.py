# deployment_engine/manifest/loader.py
"""Parse YAML manifests into manifest dataclasses."""

import logging
import os
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from deployment_engine.core.errors import ManifestValidationError
from deployment_engine.manifest.models import AnyManifest, WorkloadType
from deployment_engine.manifest.schemas import SCHEMAS_BY_TYPE

logger = logging.getLogger(__name__)


def parse_manifest(document: Dict[str, Any]) -> AnyManifest:
    """Validate an already-decoded manifest document."""
    if not isinstance(document, dict):
        raise ManifestValidationError("manifest must be a mapping")

    raw_type = document.get("type")
    try:
        workload_type = WorkloadType(raw_type)
    except ValueError:
        allowed = ", ".join(t.value for t in WorkloadType)
        raise ManifestValidationError(
            f'unsupported manifest type "{raw_type}" (expected one of: {allowed})'
        )

    schema = SCHEMAS_BY_TYPE[workload_type]
    try:
        parsed = schema.model_validate(document)
    except ValidationError as e:
        raise ManifestValidationError(
            f"invalid {workload_type.value} manifest: {e}"
        ) from e

    return parsed.to_manifest()


def load_manifest(raw: Union[str, bytes]) -> AnyManifest:
    """Parse YAML source. The source is kept on the manifest for template metadata."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ManifestValidationError(f"decode manifest: {e}") from e
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ManifestValidationError(f"unmarshal manifest: {e}") from e
    manifest = parse_manifest(document)
    manifest.raw_manifest = raw
    return manifest


def load_manifest_file(path: str) -> AnyManifest:
    logger.info(f"[manifest] loading {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    try:
        return load_manifest(raw)
    except ManifestValidationError as e:
        raise e.wrap(f"read manifest {os.path.basename(path)}")
