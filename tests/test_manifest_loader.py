#tests\test_manifest_loader.py

"""Test manifest parsing."""

import pytest

from deployment_engine.core.errors import ManifestValidationError
from deployment_engine.manifest.loader import load_manifest, load_manifest_file
from deployment_engine.manifest.models import (
    BackendServiceManifest,
    EnvironmentManifest,
    ScheduledJobManifest,
    WorkerServiceManifest,
)


BACKEND = """
name: api
type: Backend Service
image:
  build: api/Dockerfile
  port: 8080
cpu: 512
memory: 1024
count: 2
variables:
  LOG_LEVEL: info
  WORKERS: 4
http:
  path: /api
  alias: api.demo.example.com
  healthcheck: /health
  additional_rules:
    - path: /admin
      alias: [admin.demo.example.com, ops.demo.example.com]
sidecars:
  nginx:
    image: public.ecr.aws/nginx/nginx:latest
    port: 80
    env_file: nginx.env
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
    - name: refunds
      service: payments
      queue: true
  queue:
    timeout: 30
    dead_letter_tries: 3
"""

JOB = """
name: report
type: Scheduled Job
image:
  location: public.ecr.aws/demo/report:1.0
on:
  schedule: "@daily"
retries: 3
timeout: 1h
"""

ENVIRONMENT = """
name: test
type: Environment
network:
  vpc:
    cidr: 10.1.0.0/16
    private_subnets: [10.1.2.0/24, 10.1.3.0/24]
http:
  private:
    certificates:
      - arn:aws:acm:us-west-2:123456789012:certificate/internal
observability:
  container_insights: true
"""


class TestLoadManifest:

    def test_backend_service(self):
        manifest = load_manifest(BACKEND)

        assert isinstance(manifest, BackendServiceManifest)
        assert manifest.count == 2
        assert manifest.image.build.dockerfile == "api/Dockerfile"
        assert manifest.variables == {"LOG_LEVEL": "info", "WORKERS": "4"}
        assert manifest.http.main.alias == ["api.demo.example.com"]
        assert manifest.http.main.healthcheck_path == "/health"
        assert manifest.http.additional_rules[0].alias == ["admin.demo.example.com", "ops.demo.example.com"]
        assert manifest.sidecars["nginx"].image.location == "public.ecr.aws/nginx/nginx:latest"
        assert manifest.env_files() == {"nginx": "nginx.env"}

    def test_build_args_resolved_against_workspace(self):
        manifest = load_manifest(BACKEND)

        builds = manifest.build_args("/ws")

        assert list(builds) == ["api"]
        assert builds["api"].dockerfile == "/ws/api/Dockerfile"
        assert builds["api"].context == "/ws/api"

    def test_worker_service(self):
        manifest = load_manifest(WORKER)

        assert isinstance(manifest, WorkerServiceManifest)
        assert [s.has_dedicated_queue() for s in manifest.subscriptions] == [False, True]
        assert manifest.queue.timeout_seconds == 30
        assert manifest.queue.dead_letter_tries == 3

    def test_scheduled_job(self):
        manifest = load_manifest(JOB)

        assert isinstance(manifest, ScheduledJobManifest)
        assert manifest.schedule == "@daily"
        assert manifest.retries == 3
        assert manifest.timeout == "1h"

    def test_environment(self):
        manifest = load_manifest(ENVIRONMENT)

        assert isinstance(manifest, EnvironmentManifest)
        assert manifest.network.vpc_cidr == "10.1.0.0/16"
        assert manifest.network.private_subnet_cidrs == ["10.1.2.0/24", "10.1.3.0/24"]
        assert manifest.private_certificates == ["arn:aws:acm:us-west-2:123456789012:certificate/internal"]
        assert manifest.container_insights is True
        assert manifest.cdn_enabled is None

    def test_source_kept_on_manifest(self):
        assert load_manifest(JOB).raw_manifest == JOB
        assert load_manifest(JOB.encode("utf-8")).raw_manifest == JOB

    # -------------------------
    # ERRORS
    # -------------------------

    def test_unsupported_type(self):
        with pytest.raises(ManifestValidationError) as exc:
            load_manifest("name: web\ntype: Load Balanced Web Service\n")

        assert 'unsupported manifest type "Load Balanced Web Service"' in str(exc.value)

    def test_schema_violation(self):
        with pytest.raises(ManifestValidationError) as exc:
            load_manifest("name: api\ntype: Backend Service\ncpu: -1\n")

        assert "invalid Backend Service manifest" in str(exc.value)

    def test_not_a_mapping(self):
        with pytest.raises(ManifestValidationError):
            load_manifest("- a\n- b\n")

    def test_invalid_yaml(self):
        with pytest.raises(ManifestValidationError):
            load_manifest("name: [unclosed\n")

    def test_file_errors_name_the_file(self, tmp_path):
        path = tmp_path / "manifest.yml"
        path.write_text("type: Unknown\n")

        with pytest.raises(ManifestValidationError) as exc:
            load_manifest_file(str(path))

        assert str(exc.value).startswith("read manifest manifest.yml: ")
