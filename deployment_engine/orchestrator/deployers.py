# deployment_engine/orchestrator/deployers.py
"""Deployer selection by manifest variant."""

from deployment_engine.core.errors import ManifestTypeError
from deployment_engine.core.models import Application, Environment
from deployment_engine.manifest.models import WorkloadType
from deployment_engine.orchestrator.backend import BackendServiceDeployer
from deployment_engine.orchestrator.env import EnvironmentDeployer
from deployment_engine.orchestrator.job import ScheduledJobDeployer
from deployment_engine.orchestrator.worker import WorkerServiceDeployer
from deployment_engine.orchestrator.workload import Deployer, DeployerDependencies

DEPLOYERS = {
    WorkloadType.BACKEND_SERVICE: BackendServiceDeployer,
    WorkloadType.WORKER_SERVICE: WorkerServiceDeployer,
    WorkloadType.SCHEDULED_JOB: ScheduledJobDeployer,
    WorkloadType.ENVIRONMENT: EnvironmentDeployer,
}


def new_deployer(
    app: Application,
    env: Environment,
    manifest,
    deps: DeployerDependencies,
) -> Deployer:
    workload_type = getattr(manifest, "workload_type", None)
    deployer_cls = DEPLOYERS.get(workload_type)
    if deployer_cls is None:
        raise ManifestTypeError("a deployable manifest", type(manifest).__name__)
    return deployer_cls(app, env, manifest, deps)
