#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest

from deployment_engine.artifacts.addons import AddonsPackager
from deployment_engine.artifacts.custom_resources import CUSTOM_RESOURCES_BY_TYPE, CustomResourceReader
from deployment_engine.core.events import LogEventEmitter, MultiEventEmitter
from deployment_engine.core.models import (
    Application,
    Environment,
    EnvironmentHTTPConfig,
    RegionalResources,
)
from deployment_engine.infrastructure.memory.clients import (
    InMemoryAliasCertValidator,
    InMemoryImageBuilderPusher,
    InMemoryRegionalResourcesGetter,
    InMemoryStackClient,
    InMemoryTopicLister,
    InMemoryUploader,
)
from deployment_engine.manifest.models import (
    BackendServiceManifest,
    HTTPConfig,
    ImageConfig,
    RoutingRule,
    WorkerServiceManifest,
)
from deployment_engine.orchestrator.workload import DeployerDependencies

CERT_ARN = "arn:aws:acm:us-west-2:123456789012:certificate/internal"


@pytest.fixture
def app():
    return Application(name="demo", domain="example.com", tags={"team": "platform"})


@pytest.fixture
def env():
    """Environment without imported certificates."""
    return Environment(
        name="test",
        region="us-west-2",
        account_id="123456789012",
        manager_role_arn="arn:aws:iam::123456789012:role/demo-test-EnvManagerRole",
        execution_role_arn="arn:aws:iam::123456789012:role/demo-test-CFNExecutionRole",
    )


@pytest.fixture
def cert_arn():
    return CERT_ARN


@pytest.fixture
def env_with_certs(env):
    return Environment(
        name=env.name,
        region=env.region,
        account_id=env.account_id,
        manager_role_arn=env.manager_role_arn,
        execution_role_arn=env.execution_role_arn,
        http=EnvironmentHTTPConfig(private_certificates=(CERT_ARN,)),
    )


@pytest.fixture
def regional_resources():
    return RegionalResources(
        region="us-west-2",
        s3_bucket="demo-artifacts",
        kms_key_arn="arn:aws:kms:us-west-2:123456789012:key/abc",
        repository_urls={
            "api": "123456789012.dkr.ecr.us-west-2.amazonaws.com/demo/api",
            "orders-worker": "123456789012.dkr.ecr.us-west-2.amazonaws.com/demo/orders-worker",
        },
    )


@pytest.fixture
def custom_resources_dir(tmp_path):
    """Handler sources for every custom resource function."""
    root = tmp_path / "custom-resources"
    root.mkdir()
    names = {name for names in CUSTOM_RESOURCES_BY_TYPE.values() for name in names}
    for name in sorted(names):
        (root / f"{name}.js").write_text(f"exports.handler = async () => '{name}';\n")
    return root


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def uploader():
    return InMemoryUploader(region="us-west-2")


@pytest.fixture
def resources_getter(regional_resources):
    return InMemoryRegionalResourcesGetter(regional_resources)


@pytest.fixture
def stack_client():
    return InMemoryStackClient()


@pytest.fixture
def event_log():
    return LogEventEmitter()


@pytest.fixture
def make_deps(uploader, resources_getter, stack_client, event_log, workspace, custom_resources_dir):
    """Build in-memory dependencies, overriding any collaborator by keyword."""

    def _make(**overrides):
        values = dict(
            uploader=uploader,
            regional_resources=resources_getter,
            stack_client=stack_client,
            image_builder=InMemoryImageBuilderPusher(),
            custom_resources=CustomResourceReader(str(custom_resources_dir)),
            addons=AddonsPackager(str(workspace)),
            topic_lister=InMemoryTopicLister(),
            cert_validator=InMemoryAliasCertValidator({CERT_ARN: ["*.demo.example.com"]}),
            emitter=MultiEventEmitter([event_log]),
            workspace=str(workspace),
        )
        values.update(overrides)
        return DeployerDependencies(**values)

    return _make


@pytest.fixture
def backend_manifest():
    return BackendServiceManifest(
        name="api",
        image=ImageConfig(location="public.ecr.aws/nginx/nginx:latest", port=80),
        count=2,
        http=HTTPConfig(main=RoutingRule(path="/api", healthcheck_path="/health")),
    )


@pytest.fixture
def worker_manifest():
    return WorkerServiceManifest(
        name="orders-worker",
        image=ImageConfig(location="public.ecr.aws/demo/worker:1.0"),
    )
