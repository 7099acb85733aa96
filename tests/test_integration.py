#tests\test_integration.py

"""Integration test - full workflow."""

import json

import pytest

from deployment_engine.core.errors import TopicNotFoundError
from deployment_engine.core.models import DeploymentState
from deployment_engine.manifest.loader import load_manifest
from deployment_engine.orchestrator.deployers import new_deployer
from deployment_engine.orchestrator.service import DeploymentService, DeployParams


ENVIRONMENT = """
name: test
type: Environment
"""

BACKEND = """
name: api
type: Backend Service
image:
  build: api/Dockerfile
  port: 8080
env_file: api.env
http:
  path: /api
  healthcheck: /health
"""

WORKER = """
name: orders-worker
type: Worker Service
image:
  location: public.ecr.aws/demo/worker:1.0
subscribe:
  topics:
    - name: events
      service: orders
"""


@pytest.fixture
def service(make_deps):
    return DeploymentService(lambda app, env, manifest: new_deployer(app, env, manifest, make_deps()))


class TestIntegrationWorkflow:
    """Test complete deploy workflow."""

    def test_environment_then_service(self, service, app, env, workspace, stack_client, uploader, event_log):
        """Test: deploy env -> upload service artifacts -> deploy service."""
        (workspace / "api.env").write_text("LOG_LEVEL=debug\n")

        # 1. Environment
        env_result = service.deploy(app, env, load_manifest(ENVIRONMENT), DeployParams())
        assert env_result.record.state == DeploymentState.APPLIED
        assert "demo-test" in stack_client.stacks

        # 2. Backend service
        result = service.deploy(
            app, env, load_manifest(BACKEND),
            DeployParams(custom_tag="v1.2.0", tags={"cost-center": "42"}),
        )

        assert result.record.state == DeploymentState.APPLIED
        assert result.recommended_actions == []
        assert "image/api" in result.artifacts
        assert "env-file/api" in result.artifacts

        call = stack_client.deploy_calls[-1]
        params = {p.key: p.value for p in call["parameters"]}
        assert params["ContainerImage"].endswith("@" + result.artifacts["image/api"])
        assert call["tags"]["cost-center"] == "42"

        doc = json.loads(call["template"])
        container = doc["Resources"]["TaskDefinition"]["Properties"]["ContainerDefinitions"][0]
        variables = {e["Name"]: e["Value"] for e in container["Environment"]}
        assert variables["DEPLOY_SERVICE_DISCOVERY_ENDPOINT"] == "test.demo.local"

        # 3. Events for both deployments
        started = [e for e in event_log.events if e.event_type == "deploy.started"]
        applied = [e for e in event_log.events if e.event_type == "deploy.applied"]
        assert len(started) == 2
        assert len(applied) == 2

    def test_redeploy_without_changes(self, service, app, env, stack_client):
        manifest = load_manifest(ENVIRONMENT)

        service.deploy(app, env, manifest, DeployParams())
        second = service.deploy(app, env, manifest, DeployParams())

        assert second.record.state == DeploymentState.APPLIED
        assert len(stack_client.deploy_calls) == 2

    def test_worker_with_missing_topic_uploads_nothing(self, service, app, env, uploader, stack_client):
        with pytest.raises(TopicNotFoundError):
            service.deploy(app, env, load_manifest(WORKER), DeployParams())

        assert uploader.calls == []
        assert stack_client.deploy_calls == []

    def test_template_preview(self, service, app, env, stack_client, uploader):
        out = service.generate_template(app, env, load_manifest(BACKEND), DeployParams())

        assert json.loads(out.parameters)["Parameters"]["WorkloadName"] == "api"
        assert uploader.calls == []
        assert stack_client.deploy_calls == []
