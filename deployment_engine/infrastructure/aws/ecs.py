# deployment_engine/infrastructure/aws/ecs.py
"""ECS service force updates."""

import logging
from datetime import datetime
from typing import Tuple

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from deployment_engine.core.clients import ServiceForceUpdater
from deployment_engine.core.errors import DeployDependencyError
from deployment_engine.core.naming import (
    APP_TAG_KEY,
    ENV_TAG_KEY,
    WORKLOAD_TAG_KEY,
    arn_resource,
)

logger = logging.getLogger(__name__)

_WAITER_CONFIG = {"Delay": 15, "MaxAttempts": 240}


class ECSServiceForceUpdater(ServiceForceUpdater):
    """
    Finds the workload's ECS service by its deploy tags, then forces a new
    deployment of it.
    """

    def __init__(self, ecs_client, tagging_client):
        self._ecs = ecs_client
        self._tagging = tagging_client

    def _service(self, app: str, env: str, workload: str) -> Tuple[str, str]:
        """(cluster, service) names of the workload's service."""
        try:
            resp = self._tagging.get_resources(
                TagFilters=[
                    {"Key": APP_TAG_KEY, "Values": [app]},
                    {"Key": ENV_TAG_KEY, "Values": [env]},
                    {"Key": WORKLOAD_TAG_KEY, "Values": [workload]},
                ],
                ResourceTypeFilters=["ecs:service"],
            )
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"get ECS service for {workload}"]) from e

        arns = [r["ResourceARN"] for r in resp.get("ResourceTagMappingList", [])]
        if len(arns) != 1:
            raise DeployDependencyError(
                f"expected 1 ECS service for {workload} in environment {env}, found {len(arns)}"
            )

        # service/{cluster}/{service}
        parts = arn_resource(arns[0]).split("/")
        if len(parts) != 3 or parts[0] != "service":
            raise DeployDependencyError(f"unexpected ECS service ARN {arns[0]}")
        return parts[1], parts[2]

    def last_updated_at(self, app: str, env: str, workload: str) -> datetime:
        cluster, service = self._service(app, env, workload)
        try:
            resp = self._ecs.describe_services(cluster=cluster, services=[service])
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"describe ECS service {service}"]) from e

        for svc in resp.get("services", []):
            for deployment in svc.get("deployments", []):
                if deployment.get("status") == "PRIMARY":
                    return deployment["updatedAt"]
        raise DeployDependencyError(f"no primary deployment for ECS service {service}")

    def force_update_service(self, app: str, env: str, workload: str) -> None:
        cluster, service = self._service(app, env, workload)
        context = f"force an update for service {workload}"
        logger.info(f"[ecs] forcing new deployment of {cluster}/{service}")
        try:
            self._ecs.update_service(cluster=cluster, service=service, forceNewDeployment=True)
            self._ecs.get_waiter("services_stable").wait(
                cluster=cluster,
                services=[service],
                WaiterConfig=_WAITER_CONFIG,
            )
        except WaiterError as e:
            raise DeployDependencyError(f"wait for service {service} to stabilize: {e}", [context]) from e
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [context]) from e
        logger.info(f"[ecs] {service} is stable")
