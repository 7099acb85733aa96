# deployment_engine/api/routes/deployments.py
"""Deployment API routes. DeployError is mapped to a status code in api/main.py."""

from fastapi import APIRouter, Depends

from deployment_engine.api.container import get_deployment_service
from deployment_engine.api.schemas.deployment import (
    DeploymentRequest,
    DeploymentResponse,
    TemplateResponse,
)
from deployment_engine.manifest.loader import load_manifest

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.post("/template", response_model=TemplateResponse)
def generate_template(
    request: DeploymentRequest,
    service=Depends(get_deployment_service),
):
    manifest = load_manifest(request.manifest)
    out = service.generate_template(
        request.application.to_model(),
        request.environment.to_model(),
        manifest,
        request.to_params(),
    )
    return TemplateResponse(template=out.template, parameters=out.parameters)


@router.post("", response_model=DeploymentResponse)
def create_deployment(
    request: DeploymentRequest,
    service=Depends(get_deployment_service),
):
    manifest = load_manifest(request.manifest)
    result = service.deploy(
        request.application.to_model(),
        request.environment.to_model(),
        manifest,
        request.to_params(),
    )

    record = result.record
    return DeploymentResponse(
        deployment_id=record.deployment_id,
        workload=record.workload_name,
        workload_type=record.workload_type,
        state=record.state.value,
        error_message=record.error_message,
        recommended_actions=result.recommended_actions,
        artifacts=result.artifacts,
    )
