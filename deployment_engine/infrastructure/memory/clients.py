# deployment_engine/infrastructure/memory/clients.py
"""In-memory collaborators for local runs and tests."""

import hashlib
import json
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Mapping, Optional, Sequence

from deployment_engine.core import artifactpath
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
    DeployDependencyError,
    EmptyChangeSetError,
    StackApplyError,
)
from deployment_engine.core.models import (
    RegionalResources,
    StackApplyOptions,
    StackParameter,
    Topic,
)
from deployment_engine.core.naming import domain_matches


class InMemoryUploader(Uploader):
    def __init__(self, region: str = "us-west-2", fail_on: Optional[str] = None):
        self.region = region
        self.objects: Dict[str, bytes] = {}
        self.calls: List[str] = []
        self._fail_on = fail_on
        self._lock = Lock()

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        if self._fail_on and key.startswith(self._fail_on):
            raise DeployDependencyError(f"put object {key}: access denied")
        with self._lock:
            self.objects[f"{bucket}/{key}"] = data
            self.calls.append(key)
        return artifactpath.object_url(bucket, self.region, key)


class InMemoryRegionalResourcesGetter(RegionalResourcesGetter):
    def __init__(self, resources: Optional[RegionalResources] = None, error: Optional[Exception] = None):
        self._resources = resources
        self._error = error
        self.calls = 0

    def get_app_resources_by_region(self, app: str, region: str) -> RegionalResources:
        self.calls += 1
        if self._error is not None:
            raise self._error
        if self._resources is None:
            return RegionalResources(region=region, s3_bucket="")
        return self._resources


class InMemoryTopicLister(TopicLister):
    def __init__(self, topics: Optional[List[Topic]] = None):
        self._topics = list(topics or [])
        self.calls = 0

    def list_topics(self, app: str, env: str) -> List[Topic]:
        self.calls += 1
        return list(self._topics)


class InMemoryAliasCertValidator(AliasCertValidator):
    """``certs`` maps certificate ARN -> subject names it covers."""

    def __init__(self, certs: Optional[Mapping[str, Sequence[str]]] = None):
        self._certs = {k: list(v) for k, v in (certs or {}).items()}
        self.calls = 0

    def validate_cert_aliases(self, aliases: Sequence[str], certs: Sequence[str]) -> None:
        self.calls += 1
        names: List[str] = []
        for arn in certs:
            names.extend(self._certs.get(arn, []))
        for alias in aliases:
            if not any(domain_matches(alias, name) for name in names):
                raise DeployConfigurationError(
                    f"{alias} is not a valid domain against {', '.join(certs)}"
                )


class InMemoryImageBuilderPusher(ImageBuilderPusher):
    def __init__(self, fail: bool = False):
        self.pushed: List[Dict[str, object]] = []
        self._fail = fail
        self._lock = Lock()

    def build_and_push(
        self,
        repo_url: str,
        dockerfile: str,
        context: str,
        tags: Sequence[str],
        build_args: Optional[Mapping[str, str]] = None,
        target: Optional[str] = None,
        cache_from: Sequence[str] = (),
        platform: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        if self._fail:
            raise DeployDependencyError(f"build {dockerfile}: daemon unavailable")
        digest = "sha256:" + hashlib.sha256(
            f"{repo_url}|{dockerfile}|{','.join(tags)}".encode("utf-8")
        ).hexdigest()
        with self._lock:
            self.pushed.append({
                "repo_url": repo_url,
                "dockerfile": dockerfile,
                "tags": list(tags),
                "labels": dict(labels or {}),
                "digest": digest,
            })
        return digest


class InMemoryServiceForceUpdater(ServiceForceUpdater):
    """Records forced updates."""

    def __init__(self, updated_at: Optional[datetime] = None, fail: bool = False):
        self.updated_at = updated_at or datetime(1970, 1, 1, tzinfo=timezone.utc)
        self.forced: List[str] = []
        self._fail = fail

    def last_updated_at(self, app: str, env: str, workload: str) -> datetime:
        return self.updated_at

    def force_update_service(self, app: str, env: str, workload: str) -> None:
        if self._fail:
            raise DeployDependencyError("service did not stabilize", [f"force an update for service {workload}"])
        self.forced.append(f"{app}/{env}/{workload}")
        self.updated_at = datetime.now(timezone.utc)


def _literal_outputs(template: str) -> Dict[str, str]:
    """Outputs whose value is a plain string in a JSON template."""
    try:
        doc = json.loads(template)
    except ValueError:
        return {}
    outputs = {}
    for key, output in (doc.get("Outputs") or {}).items():
        value = output.get("Value") if isinstance(output, dict) else None
        if isinstance(value, str):
            outputs[key] = value
    return outputs


class InMemoryStackClient(StackClient):
    """
    Keeps deployed stacks in memory.

    Re-deploying an identical template and parameter set raises
    ``EmptyChangeSetError`` like the real control plane.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.stacks: Dict[str, Dict[str, object]] = {}
        self.deploy_calls: List[Dict[str, object]] = []
        self.read_calls: List[str] = []
        self._fail_with = fail_with

    def seed(
        self,
        stack_name: str,
        parameters: Optional[List[StackParameter]] = None,
        outputs: Optional[Dict[str, str]] = None,
    ) -> None:
        self.stacks[stack_name] = {
            "template": "",
            "parameters": list(parameters or []),
            "tags": {},
            "outputs": dict(outputs or {}),
        }

    def deploy(
        self,
        stack_name: str,
        template: str,
        parameters: List[StackParameter],
        tags: Dict[str, str],
        bucket: str,
        options: StackApplyOptions,
    ) -> None:
        self.deploy_calls.append({
            "stack_name": stack_name,
            "template": template,
            "parameters": list(parameters),
            "tags": dict(tags),
            "bucket": bucket,
            "options": options,
        })
        if self._fail_with:
            raise StackApplyError(self._fail_with)

        current = self.stacks.get(stack_name)
        if current and current["template"] == template and current["parameters"] == list(parameters):
            raise EmptyChangeSetError(stack_name)

        outputs = dict(current["outputs"]) if current else {}
        outputs.update(_literal_outputs(template))
        self.stacks[stack_name] = {
            "template": template,
            "parameters": list(parameters),
            "tags": dict(tags),
            "outputs": outputs,
        }

    def deployed_parameters(self, stack_name: str) -> List[StackParameter]:
        self.read_calls.append(f"parameters:{stack_name}")
        stack = self.stacks.get(stack_name)
        if not stack:
            return []
        return list(stack["parameters"])

    def stack_output(self, stack_name: str, output_key: str) -> str:
        self.read_calls.append(f"output:{stack_name}:{output_key}")
        stack = self.stacks.get(stack_name)
        if not stack:
            return ""
        return stack["outputs"].get(output_key, "")
