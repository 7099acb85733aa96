from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from deployment_engine.core.models import Application, Environment, EnvironmentHTTPConfig
from deployment_engine.orchestrator.service import DeployParams


class ApplicationSpec(BaseModel):
    name: str
    domain: str = ""
    tags: Dict[str, str] = Field(default_factory=dict)

    def to_model(self) -> Application:
        return Application(name=self.name, domain=self.domain, tags=dict(self.tags))


class EnvironmentSpec(BaseModel):
    name: str
    region: str
    account_id: str = ""
    manager_role_arn: str = ""
    execution_role_arn: str = ""
    public_certificates: List[str] = Field(default_factory=list)
    private_certificates: List[str] = Field(default_factory=list)

    def to_model(self) -> Environment:
        return Environment(
            name=self.name,
            region=self.region,
            account_id=self.account_id,
            manager_role_arn=self.manager_role_arn,
            execution_role_arn=self.execution_role_arn,
            http=EnvironmentHTTPConfig(
                public_certificates=tuple(self.public_certificates),
                private_certificates=tuple(self.private_certificates),
            ),
        )


class DeploymentRequest(BaseModel):
    application: ApplicationSpec
    environment: EnvironmentSpec
    manifest: str
    custom_tag: str = ""
    git_short_commit: str = ""
    disable_rollback: bool = False
    force_new_update: bool = False
    root_user_arn: str = ""
    permissions_boundary: str = ""
    tags: Dict[str, str] = Field(default_factory=dict)

    def to_params(self) -> DeployParams:
        return DeployParams(
            custom_tag=self.custom_tag,
            git_short_commit=self.git_short_commit,
            disable_rollback=self.disable_rollback,
            force_new_update=self.force_new_update,
            root_user_arn=self.root_user_arn,
            permissions_boundary=self.permissions_boundary,
            tags=dict(self.tags),
        )


class TemplateResponse(BaseModel):
    template: str
    parameters: str


class DeploymentResponse(BaseModel):
    deployment_id: UUID
    workload: str
    workload_type: str
    state: str
    error_message: Optional[str] = None
    recommended_actions: List[str]
    artifacts: Dict[str, str]
