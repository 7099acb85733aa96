#tests\test_runtime_config.py

"""Test RuntimeConfig building and regional resource caching."""

import pytest

from deployment_engine.core.errors import (
    DeployConfigurationError,
    DeployDependencyError,
    RegionalResourcesError,
)
from deployment_engine.core.models import ContainerImageIdentifier, RegionalResources
from deployment_engine.core.resources import RegionalResourceCache
from deployment_engine.core.runtime_config import build_runtime_config
from deployment_engine.infrastructure.memory.clients import InMemoryRegionalResourcesGetter


class TestBuildRuntimeConfig:

    def _build(self, env, regional_resources, **kwargs):
        values = dict(
            workload_name="api",
            environment=env,
            resources=regional_resources,
            env_version="v1.2.0",
            service_discovery_endpoint="test.demo.local",
        )
        values.update(kwargs)
        return build_runtime_config(**values)

    def test_main_container_uses_custom_tag(self, env, regional_resources):
        digests = {
            "api": ContainerImageIdentifier("sha256:main", "release-1", "abc123"),
            "nginx": ContainerImageIdentifier("sha256:side", "", "abc123"),
        }

        rc = self._build(env, regional_resources, image_digests=digests, built_containers=["api", "nginx"])

        assert rc.pushed_images["api"].image_tag == "release-1"
        assert rc.pushed_images["nginx"].image_tag == "abc123"
        assert rc.pushed_images["api"].repo_url == regional_resources.repository_urls["api"]
        assert rc.pushed_images["nginx"].main_container_name == "api"

    def test_copies_sizing_and_environment(self, env, regional_resources):
        rc = self._build(env, regional_resources, cpu=1024, memory=2048, count=3)

        assert (rc.cpu, rc.memory, rc.count) == (1024, 2048, 3)
        assert rc.account_id == "123456789012"
        assert rc.region == "us-west-2"
        assert rc.env_version == "v1.2.0"

    def test_missing_digest_is_configuration_error(self, env, regional_resources):
        with pytest.raises(DeployConfigurationError) as exc:
            self._build(env, regional_resources, built_containers=["api"])

        assert "no pushed image digest for container api" in str(exc.value)

    def test_missing_digest_skipped_when_not_required(self, env, regional_resources):
        rc = self._build(env, regional_resources, built_containers=["api"], require_images=False)

        assert "api" not in rc.pushed_images

    def test_result_is_immutable(self, env, regional_resources):
        rc = self._build(env, regional_resources, additional_tags={"owner": "me"})

        with pytest.raises(TypeError):
            rc.additional_tags["owner"] = "you"
        with pytest.raises(AttributeError):
            rc.cpu = 4096


class TestRegionalResourceCache:

    def test_lookup_happens_once(self, regional_resources):
        getter = InMemoryRegionalResourcesGetter(regional_resources)
        cache = RegionalResourceCache(getter, "demo", "us-west-2")

        for _ in range(5):
            assert cache.get().s3_bucket == "demo-artifacts"

        assert getter.calls == 1

    def test_empty_bucket_is_invariant_violation(self):
        getter = InMemoryRegionalResourcesGetter(RegionalResources(region="us-west-2", s3_bucket=""))
        cache = RegionalResourceCache(getter, "demo", "us-west-2")

        with pytest.raises(RegionalResourcesError) as exc:
            cache.get()

        assert "cannot find the S3 artifact bucket in region us-west-2" in str(exc.value)

    def test_failed_lookup_is_not_cached(self, regional_resources):
        getter = InMemoryRegionalResourcesGetter(RegionalResources(region="us-west-2", s3_bucket=""))
        cache = RegionalResourceCache(getter, "demo", "us-west-2")

        for _ in range(2):
            with pytest.raises(RegionalResourcesError):
                cache.get()

        assert getter.calls == 2

    def test_dependency_error_is_wrapped(self):
        getter = InMemoryRegionalResourcesGetter(error=DeployDependencyError("throttled"))
        cache = RegionalResourceCache(getter, "demo", "us-west-2")

        with pytest.raises(DeployDependencyError) as exc:
            cache.get()

        assert str(exc.value) == "get application demo resources from region us-west-2: throttled"

    def test_unexpected_error_becomes_dependency_error(self):
        getter = InMemoryRegionalResourcesGetter(error=RuntimeError("boom"))
        cache = RegionalResourceCache(getter, "demo", "eu-west-1")

        with pytest.raises(DeployDependencyError) as exc:
            cache.get()

        assert isinstance(exc.value.__cause__, RuntimeError)
        assert "region eu-west-1" in str(exc.value)
