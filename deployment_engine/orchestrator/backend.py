# deployment_engine/orchestrator/backend.py

from deployment_engine.core.validation import DeployValidator
from deployment_engine.manifest.models import BackendServiceManifest, WorkloadType
from deployment_engine.orchestrator.workload import WorkloadDeployer


class BackendServiceDeployer(WorkloadDeployer):
    """Service reachable from other services in the same environment."""

    workload_type = WorkloadType.BACKEND_SERVICE
    deploy_context = "deploy service"
    runs_service = True

    @classmethod
    def manifest_class(cls) -> type:
        return BackendServiceManifest

    def validate(self) -> None:
        DeployValidator.validate_routing(
            self.manifest.http,
            self.name,
            self.env,
            self.deps.cert_validator,
        )
