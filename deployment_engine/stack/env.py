# deployment_engine/stack/env.py
"""Environment stack configuration."""

from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from deployment_engine.core.artifactpath import parse_url
from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.core.models import Application, Environment, StackParameter
from deployment_engine.core.naming import (
    APP_TAG_KEY,
    ENV_TAG_KEY,
    service_discovery_endpoint,
    stack_name_for_env,
)
from deployment_engine.manifest.models import EnvironmentManifest
from deployment_engine.stack.base import StackConfiguration
from deployment_engine.stack.renderer import JSONTemplateRenderer, TemplateRenderer
from deployment_engine.stack.workload import (
    CUSTOM_RESOURCE_RUNTIME,
    TEMPLATE_VERSION,
    manifest_metadata,
)

# Keys maintained by workload deployments, never driven by the manifest
WORKLOAD_MANAGED_KEYS = (
    "ALBWorkloads",
    "InternalALBWorkloads",
    "EFSWorkloads",
    "NATWorkloads",
    "Aliases",
)

SERVICE_DISCOVERY_KEY = "ServiceDiscoveryEndpoint"
FORCE_UPDATE_OUTPUT = "LastForceDeployID"
ENV_VERSION_OUTPUT = "EnvironmentVersion"

# Version of the environment template. Workloads record it in their metadata.
ENV_TEMPLATE_VERSION = "v1.0.0"

DEFAULT_VPC_CIDR = "10.0.0.0/16"
DEFAULT_PUBLIC_SUBNETS = "10.0.0.0/24,10.0.1.0/24"
DEFAULT_PRIVATE_SUBNETS = "10.0.2.0/24,10.0.3.0/24"


def _bool(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "true" if value else "false"


def _csv(values: Sequence[str]) -> Optional[str]:
    if not values:
        return None
    return ",".join(values)


def new_force_update_id(force: bool, previous: str) -> str:
    """Fresh marker when a forced update is requested, else the previous one."""
    if force:
        return str(uuid4())
    return previous


class EnvStackConfig(StackConfiguration):
    """
    Renders the shared environment stack.

    Parameter values resolve per key as: explicit manifest value, then the
    previously deployed value, then the default. Workload-managed keys are
    always carried forward, and previous keys this configuration does not
    know about are kept verbatim.
    """

    def __init__(
        self,
        app: Application,
        env: Environment,
        manifest: EnvironmentManifest,
        previous_parameters: List[StackParameter],
        force_update_id: str,
        root_user_arn: str = "",
        permissions_boundary: str = "",
        custom_resource_urls: Optional[Dict[str, str]] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self._app = app
        self._env = env
        self._manifest = manifest
        self._prev = {p.key: p.value for p in previous_parameters}
        self._prev_order = [p.key for p in previous_parameters]
        self._force_update_id = force_update_id
        self._root_user_arn = root_user_arn
        self._permissions_boundary = permissions_boundary
        self._custom_resource_urls = dict(custom_resource_urls or {})
        self._renderer = renderer or JSONTemplateRenderer()

    @property
    def stack_name(self) -> str:
        return stack_name_for_env(self._app.name, self._env.name)

    @property
    def force_update_id(self) -> str:
        return self._force_update_id

    def tags(self) -> Dict[str, str]:
        tags = dict(self._app.tags)
        tags[APP_TAG_KEY] = self._app.name
        tags[ENV_TAG_KEY] = self._env.name
        return tags

    # -------------------------
    # Parameters
    # -------------------------

    def _explicit(self) -> Dict[str, Optional[str]]:
        """Manifest-driven values; None means the manifest is silent."""
        m = self._manifest
        return {
            "AppName": self._app.name,
            "EnvironmentName": self._env.name,
            "ToolsAccountPrincipalARN": self._root_user_arn or None,
            "AppDNSName": self._app.domain or None,
            "VPCCIDR": m.network.vpc_cidr,
            "PublicSubnetCIDRs": _csv(m.network.public_subnet_cidrs),
            "PrivateSubnetCIDRs": _csv(m.network.private_subnet_cidrs),
            "PublicCertificates": _csv(m.public_certificates),
            "PrivateCertificates": _csv(m.private_certificates),
            "CreateHTTPSListener": "true" if m.public_certificates else None,
            "CreateInternalHTTPSListener": "true" if m.private_certificates else None,
            "EnableContainerInsights": _bool(m.container_insights),
            "CDNEnabled": _bool(m.cdn_enabled),
        }

    def _defaults(self) -> Dict[str, str]:
        return {
            "ToolsAccountPrincipalARN": "",
            "AppDNSName": "",
            "VPCCIDR": DEFAULT_VPC_CIDR,
            "PublicSubnetCIDRs": DEFAULT_PUBLIC_SUBNETS,
            "PrivateSubnetCIDRs": DEFAULT_PRIVATE_SUBNETS,
            "PublicCertificates": "",
            "PrivateCertificates": "",
            "CreateHTTPSListener": "false",
            "CreateInternalHTTPSListener": "false",
            "EnableContainerInsights": "false",
            "CDNEnabled": "false",
        }

    def parameters(self) -> List[StackParameter]:
        values: Dict[str, str] = {}
        defaults = self._defaults()

        for key, explicit in self._explicit().items():
            if explicit is not None:
                values[key] = explicit
            elif key in self._prev:
                values[key] = self._prev[key]
            else:
                values[key] = defaults.get(key, "")

        for key in WORKLOAD_MANAGED_KEYS:
            values[key] = self._prev.get(key, "")

        prev_endpoint = self._prev.get(SERVICE_DISCOVERY_KEY, "")
        values[SERVICE_DISCOVERY_KEY] = prev_endpoint or service_discovery_endpoint(
            self._app.name, self._env.name
        )

        for key in self._prev_order:
            if key not in values:
                values[key] = self._prev[key]

        return [StackParameter(k, values[k]) for k in sorted(values)]

    # -------------------------
    # Template
    # -------------------------

    def _custom_resource_functions(self) -> Dict[str, Any]:
        resources: Dict[str, Any] = {}
        for fn_name, url in sorted(self._custom_resource_urls.items()):
            try:
                bucket, key = parse_url(url)
            except ValueError as e:
                raise DeployConfigurationError(str(e), [f"custom resource {fn_name}"]) from e
            props: Dict[str, Any] = {
                "Code": {"S3Bucket": bucket, "S3Key": key},
                "Handler": "index.handler",
                "Timeout": 900,
                "MemorySize": 512,
                "Runtime": CUSTOM_RESOURCE_RUNTIME,
            }
            resources[fn_name] = {"Type": "AWS::Lambda::Function", "Properties": props}
        return resources

    def _document(self) -> Dict[str, Any]:
        params = self.parameters()
        resources: Dict[str, Any] = {
            "VPC": {
                "Type": "AWS::EC2::VPC",
                "Properties": {"CidrBlock": {"Ref": "VPCCIDR"}},
            },
            "Cluster": {
                "Type": "AWS::ECS::Cluster",
                "Properties": {
                    "ClusterSettings": [
                        {"Name": "containerInsights", "Value": {"Ref": "EnableContainerInsights"}}
                    ],
                },
            },
            "ServiceDiscoveryNamespace": {
                "Type": "AWS::ServiceDiscovery::PrivateDnsNamespace",
                "Properties": {
                    "Name": {"Ref": SERVICE_DISCOVERY_KEY},
                    "Vpc": {"Ref": "VPC"},
                },
            },
            "CloudformationExecutionRole": {
                "Type": "AWS::IAM::Role",
                "Properties": self._execution_role_properties(),
            },
        }
        resources.update(self._custom_resource_functions())

        return {
            "AWSTemplateFormatVersion": TEMPLATE_VERSION,
            "Description": f"Environment {self._env.name} of application {self._app.name}.",
            "Metadata": manifest_metadata(ENV_TEMPLATE_VERSION, self._manifest.raw_manifest),
            "Parameters": {p.key: {"Type": "String"} for p in params},
            "Conditions": {
                "CreateALB": {"Fn::Not": [{"Fn::Equals": [{"Ref": "ALBWorkloads"}, ""]}]},
                "CreateInternalALB": {
                    "Fn::Not": [{"Fn::Equals": [{"Ref": "InternalALBWorkloads"}, ""]}]
                },
            },
            "Resources": resources,
            "Outputs": {
                FORCE_UPDATE_OUTPUT: {"Value": self._force_update_id},
                ENV_VERSION_OUTPUT: {"Value": ENV_TEMPLATE_VERSION},
                "ServiceDiscoveryNamespaceID": {"Value": {"Ref": "ServiceDiscoveryNamespace"}},
            },
        }

    def _execution_role_properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {
            "RoleName": f"{self.stack_name}-CFNExecutionRole",
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": "cloudformation.amazonaws.com"},
                        "Action": "sts:AssumeRole",
                    }
                ],
            },
        }
        if self._permissions_boundary:
            props["PermissionsBoundary"] = self._permissions_boundary
        return props

    def template(self) -> str:
        return self._renderer.render(self._document())
