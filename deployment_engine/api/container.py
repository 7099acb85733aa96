#deployment_engine\api\container.py
from deployment_engine.container import deployment_service
from deployment_engine.orchestrator.service import DeploymentService


def get_deployment_service() -> DeploymentService:
    return deployment_service
