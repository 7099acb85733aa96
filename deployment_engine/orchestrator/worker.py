# deployment_engine/orchestrator/worker.py

import logging

from deployment_engine.core.errors import DeployDependencyError, DeployError
from deployment_engine.core.validation import DeployValidator
from deployment_engine.manifest.models import WorkerServiceManifest, WorkloadType
from deployment_engine.orchestrator.recommend import ActionRecommender, WorkerActionRecommender
from deployment_engine.orchestrator.workload import WorkloadDeployer

logger = logging.getLogger(__name__)


class WorkerServiceDeployer(WorkloadDeployer):
    """Service consuming queued messages from topics in the environment."""

    workload_type = WorkloadType.WORKER_SERVICE
    deploy_context = "deploy service"
    runs_service = True

    @classmethod
    def manifest_class(cls) -> type:
        return WorkerServiceManifest

    def validate(self) -> None:
        subscriptions = self.manifest.subscriptions
        if not subscriptions:
            return
        if self.deps.topic_lister is None:
            raise DeployDependencyError("no topic lister configured for subscription checks")

        try:
            topics = self.deps.topic_lister.list_topics(self.app.name, self.env.name)
        except DeployError as e:
            raise e.wrap(f"get SNS topics for app {self.app.name} and environment {self.env.name}")

        logger.debug(f"[worker] {len(topics)} topic(s) available in {self.env.name}")
        DeployValidator.validate_subscriptions(subscriptions, topics, self.app.name, self.env.name)

    def _recommender(self) -> ActionRecommender:
        return WorkerActionRecommender(self.manifest.subscriptions)

    def recommended_actions(self):
        return self._recommender().recommended_actions()
