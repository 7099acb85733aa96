# deployment_engine/orchestrator/job.py

from deployment_engine.manifest.models import ScheduledJobManifest, WorkloadType
from deployment_engine.orchestrator.workload import WorkloadDeployer


class ScheduledJobDeployer(WorkloadDeployer):
    workload_type = WorkloadType.SCHEDULED_JOB
    deploy_context = "deploy job"

    @classmethod
    def manifest_class(cls) -> type:
        return ScheduledJobManifest

    def _desired_count(self) -> int:
        return 1
