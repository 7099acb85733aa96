# deployment_engine/orchestrator/recommend.py
"""Post-deploy guidance per workload type."""

from abc import ABC, abstractmethod
from typing import List, Sequence

from deployment_engine.core.naming import topic_queue_name
from deployment_engine.manifest.models import TopicSubscription
from deployment_engine.stack.workload import WORKER_QUEUE_URI_VAR, WORKER_TOPIC_QUEUE_URIS_VAR


class ActionRecommender(ABC):

    @abstractmethod
    def recommended_actions(self) -> List[str]:
        raise NotImplementedError


class NoopActionRecommender(ActionRecommender):
    """Backend services, scheduled jobs and environments have nothing to recommend."""

    def recommended_actions(self) -> List[str]:
        return []


class WorkerActionRecommender(ActionRecommender):

    def __init__(self, subscriptions: Sequence[TopicSubscription]):
        self._subscriptions = list(subscriptions)

    def recommended_actions(self) -> List[str]:
        actions = [
            f'Update worker service code to read the injected environment variable "{WORKER_QUEUE_URI_VAR}".\n'
            f"In Python you can write `queue_uri = os.environ[\"{WORKER_QUEUE_URI_VAR}\"]`."
        ]

        queues = [
            topic_queue_name(sub.service, sub.name)
            for sub in self._subscriptions
            if sub.has_dedicated_queue()
        ]
        if queues:
            actions.append(
                f'Topic-specific queue URIs are in the JSON-encoded environment variable "{WORKER_TOPIC_QUEUE_URIS_VAR}", '
                f"keyed by queue name: {', '.join(queues)}."
            )
        return actions
