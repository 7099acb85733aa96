"""Event models for the deployment engine."""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID
from typing import Any, Dict


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeployEvent:
    """Lifecycle event of one deployment."""

    event_type: str
    deployment_id: UUID
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def deploy_started(record):
        return DeployEvent(
            event_type="deploy.started",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "app": record.app_name,
                "env": record.env_name,
                "workload": record.workload_name,
                "workload_type": record.workload_type,
            }
        )

    @staticmethod
    def deploy_validated(record):
        return DeployEvent(
            event_type="deploy.validated",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "state": record.state.value,
            }
        )

    @staticmethod
    def deploy_rejected(record):
        """Validation failed, nothing was mutated."""
        return DeployEvent(
            event_type="deploy.rejected",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "error_message": record.error_message,
                "error_kind": record.error_kind,
            }
        )

    @staticmethod
    def deploy_applied(record):
        return DeployEvent(
            event_type="deploy.applied",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "finished_at": record.finished_at.isoformat() if record.finished_at else None,
                "recommended_actions": list(record.recommended_actions),
            }
        )

    @staticmethod
    def deploy_failed(record):
        return DeployEvent(
            event_type="deploy.failed",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "error_message": record.error_message,
                "error_kind": record.error_kind,
                "finished_at": record.finished_at.isoformat() if record.finished_at else None,
            }
        )

    @staticmethod
    def artifacts_uploaded(record, locations: Dict[str, str]):
        return DeployEvent(
            event_type="artifacts.uploaded",
            deployment_id=record.deployment_id,
            timestamp=_now(),
            metadata={
                "locations": dict(locations),
            }
        )
