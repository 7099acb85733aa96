#tests\test_api.py

"""Test the deployment API routes."""

import pytest
from fastapi.testclient import TestClient

from deployment_engine.api.container import get_deployment_service
from deployment_engine.api.main import app as api_app
from deployment_engine.infrastructure.memory.clients import InMemoryStackClient
from deployment_engine.orchestrator.deployers import new_deployer
from deployment_engine.orchestrator.service import DeploymentService


BACKEND = """
name: api
type: Backend Service
image:
  location: public.ecr.aws/nginx/nginx:latest
  port: 80
http:
  path: /api
"""


def _body(manifest=BACKEND, **extra):
    body = {
        "application": {"name": "demo", "domain": "example.com"},
        "environment": {
            "name": "test",
            "region": "us-west-2",
            "account_id": "123456789012",
            "execution_role_arn": "arn:aws:iam::123456789012:role/demo-test-CFNExecutionRole",
        },
        "manifest": manifest,
    }
    body.update(extra)
    return body


@pytest.fixture
def client(make_deps):
    service = DeploymentService(lambda app, env, manifest: new_deployer(app, env, manifest, make_deps()))
    api_app.dependency_overrides[get_deployment_service] = lambda: service
    yield TestClient(api_app)
    api_app.dependency_overrides.clear()


class TestDeploymentsAPI:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_generate_template(self, client, stack_client):
        response = client.post("/deployments/template", json=_body())

        assert response.status_code == 200
        assert '"AWS::ECS::Service"' in response.json()["template"]
        assert stack_client.deploy_calls == []

    def test_create_deployment(self, client, stack_client):
        response = client.post("/deployments", json=_body(tags={"owner": "ops"}))

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "APPLIED"
        assert data["workload"] == "api"
        assert data["workload_type"] == "Backend Service"
        assert "custom-resource/RulePriorityFunction" in data["artifacts"]
        assert stack_client.deploy_calls[0]["tags"]["owner"] == "ops"

    def test_alias_without_certificates(self, client, uploader, stack_client):
        manifest = BACKEND + "  alias: api.demo.example.com\n"

        response = client.post("/deployments", json=_body(manifest=manifest))

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "CONFIGURATION"
        assert uploader.calls == []
        assert stack_client.deploy_calls == []

    def test_missing_env_file_is_bad_request(self, client, stack_client):
        manifest = BACKEND + "env_file: missing.env\n"

        response = client.post("/deployments", json=_body(manifest=manifest))

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "CONFIGURATION"
        assert "read env file missing.env" in response.json()["detail"]["message"]
        assert stack_client.deploy_calls == []

    def test_invalid_manifest(self, client):
        response = client.post("/deployments", json=_body(manifest="name: api\ntype: Static Site\n"))

        assert response.status_code == 400
        assert "unsupported manifest type" in response.json()["detail"]["message"]

    def test_apply_failure_is_bad_gateway(self, make_deps):
        failing = InMemoryStackClient(fail_with="UPDATE_ROLLBACK_COMPLETE")
        service = DeploymentService(
            lambda app, env, manifest: new_deployer(app, env, manifest, make_deps(stack_client=failing))
        )
        api_app.dependency_overrides[get_deployment_service] = lambda: service
        try:
            response = TestClient(api_app).post("/deployments", json=_body())
        finally:
            api_app.dependency_overrides.clear()

        assert response.status_code == 502
        assert response.json()["detail"]["message"] == "deploy service: UPDATE_ROLLBACK_COMPLETE"
