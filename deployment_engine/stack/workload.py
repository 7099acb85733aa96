# deployment_engine/stack/workload.py
"""Stack configurations for backend services, worker services and scheduled jobs."""

import json
import re
from typing import Any, Dict, List, Optional

from deployment_engine.core.artifactpath import parse_url
from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.core.models import Application, Environment, RuntimeConfig, StackParameter
from deployment_engine.core.naming import (
    APP_TAG_KEY,
    ENV_TAG_KEY,
    WORKLOAD_TAG_KEY,
    logical_id,
    resource_name,
    stack_name_for_workload,
    topic_arn,
    topic_queue_name,
)
from deployment_engine.manifest.models import (
    BackendServiceManifest,
    RoutingRule,
    ScheduledJobManifest,
    SQSQueue,
    WorkerServiceManifest,
    WorkloadManifest,
)
from deployment_engine.stack.base import StackConfiguration
from deployment_engine.stack.renderer import JSONTemplateRenderer, TemplateRenderer

TEMPLATE_VERSION = "2010-09-09"
CUSTOM_RESOURCE_RUNTIME = "nodejs16.x"
DEFAULT_LOG_RETENTION = "30"

# Parameter keys
P_APP = "AppName"
P_ENV = "EnvName"
P_WORKLOAD = "WorkloadName"
P_IMAGE = "ContainerImage"
P_CPU = "TaskCPU"
P_MEMORY = "TaskMemory"
P_COUNT = "TaskCount"
P_LOG_RETENTION = "LogRetention"
P_ADDONS_URL = "AddonsTemplateURL"
P_ENV_FILE = "EnvFileARN"
P_CONTAINER_PORT = "ContainerPort"
P_TARGET_CONTAINER = "TargetContainer"
P_TARGET_PORT = "TargetPort"
P_RULE_PATH = "RulePath"


def manifest_metadata(env_version: str, raw_manifest: str) -> Dict[str, str]:
    """Template metadata. The manifest source is embedded verbatim when known."""
    metadata = {"EnvironmentVersion": env_version}
    if raw_manifest:
        metadata["Manifest"] = raw_manifest
    return metadata


def _ref(name: str) -> Dict[str, str]:
    return {"Ref": name}


class WorkloadStackConfig(StackConfiguration):
    """Shared rendering for every container-based workload."""

    def __init__(
        self,
        app: Application,
        env: Environment,
        manifest: WorkloadManifest,
        runtime: RuntimeConfig,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self._app = app
        self._env = env
        self._manifest = manifest
        self._rc = runtime
        self._renderer = renderer or JSONTemplateRenderer()

    # -------------------------
    # Identity
    # -------------------------

    @property
    def stack_name(self) -> str:
        return stack_name_for_workload(self._app.name, self._env.name, self._manifest.name)

    def tags(self) -> Dict[str, str]:
        tags = dict(self._app.tags)
        tags.update(self._rc.additional_tags)
        tags[APP_TAG_KEY] = self._app.name
        tags[ENV_TAG_KEY] = self._env.name
        tags[WORKLOAD_TAG_KEY] = self._manifest.name
        return tags

    # -------------------------
    # Parameters
    # -------------------------

    def _image_uri(self) -> str:
        main = self._rc.pushed_images.get(self._manifest.name)
        if main is not None:
            return main.uri()
        return self._manifest.image.location or ""

    def _env_file_arn(self) -> str:
        return self._rc.env_file_arns.get(self._manifest.name, "")

    def parameters(self) -> List[StackParameter]:
        params = [
            StackParameter(P_APP, self._app.name),
            StackParameter(P_ENV, self._env.name),
            StackParameter(P_WORKLOAD, self._manifest.name),
            StackParameter(P_IMAGE, self._image_uri()),
            StackParameter(P_CPU, str(self._rc.cpu)),
            StackParameter(P_MEMORY, str(self._rc.memory)),
            StackParameter(P_COUNT, str(self._rc.count)),
            StackParameter(P_LOG_RETENTION, DEFAULT_LOG_RETENTION),
            StackParameter(P_ADDONS_URL, self._rc.addons_template_url),
            StackParameter(P_ENV_FILE, self._env_file_arn()),
        ]
        params.extend(self._extra_parameters())
        return params

    def _extra_parameters(self) -> List[StackParameter]:
        return []

    # -------------------------
    # Template
    # -------------------------

    def _description(self) -> str:
        return f"Stack for {self._manifest.name} in environment {self._env.name}."

    def _container_environment(self) -> Dict[str, Any]:
        env = {
            "DEPLOY_APPLICATION_NAME": self._app.name,
            "DEPLOY_ENVIRONMENT_NAME": self._env.name,
            "DEPLOY_SERVICE_NAME": self._manifest.name,
            "DEPLOY_SERVICE_DISCOVERY_ENDPOINT": self._rc.service_discovery_endpoint,
        }
        env.update(self._manifest.variables)
        return env

    def _container_definitions(self) -> List[Dict[str, Any]]:
        main: Dict[str, Any] = {
            "Name": self._manifest.name,
            "Image": _ref(P_IMAGE),
            "Essential": True,
            "Environment": [
                {"Name": k, "Value": v} for k, v in sorted(self._container_environment().items())
            ],
            "Secrets": [
                {"Name": k, "ValueFrom": v} for k, v in sorted(self._manifest.secrets.items())
            ],
        }
        if self._manifest.image.port:
            main["PortMappings"] = [{"ContainerPort": self._manifest.image.port}]
        if self._env_file_arn():
            main["EnvironmentFiles"] = [{"Type": "s3", "Value": _ref(P_ENV_FILE)}]

        containers = [main]
        for name, sidecar in sorted(self._manifest.sidecars.items()):
            pushed = self._rc.pushed_images.get(name)
            image = pushed.uri() if pushed is not None else (sidecar.image.location or "")
            sc: Dict[str, Any] = {
                "Name": name,
                "Image": image,
                "Essential": sidecar.essential,
                "Environment": [{"Name": k, "Value": v} for k, v in sorted(sidecar.variables.items())],
            }
            if sidecar.port:
                sc["PortMappings"] = [{"ContainerPort": sidecar.port}]
            env_file = self._rc.env_file_arns.get(name)
            if env_file:
                sc["EnvironmentFiles"] = [{"Type": "s3", "Value": env_file}]
            containers.append(sc)
        return containers

    def _base_resources(self) -> Dict[str, Any]:
        return {
            "LogGroup": {
                "Type": "AWS::Logs::LogGroup",
                "Properties": {
                    "LogGroupName": f"/deploy/{self._app.name}-{self._env.name}-{self._manifest.name}",
                    "RetentionInDays": _ref(P_LOG_RETENTION),
                },
            },
            "TaskDefinition": {
                "Type": "AWS::ECS::TaskDefinition",
                "Properties": {
                    "Family": self.stack_name,
                    "Cpu": _ref(P_CPU),
                    "Memory": _ref(P_MEMORY),
                    "RuntimePlatform": self._runtime_platform(),
                    "ContainerDefinitions": self._container_definitions(),
                },
            },
        }

    def _runtime_platform(self) -> Dict[str, str]:
        os_family, _, arch = self._manifest.container_platform().partition("/")
        cpu_arch = "ARM64" if arch in ("arm", "arm64") else "X86_64"
        return {"OperatingSystemFamily": os_family.upper(), "CpuArchitecture": cpu_arch}

    def _addons_resources(self) -> Dict[str, Any]:
        if not self._rc.addons_template_url:
            return {}
        params = {P_APP: _ref(P_APP), P_ENV: _ref(P_ENV), P_WORKLOAD: _ref(P_WORKLOAD)}
        params.update(self._rc.addons_parameters)
        return {
            "AddonsStack": {
                "Type": "AWS::CloudFormation::Stack",
                "Condition": "HasAddons",
                "Properties": {
                    "TemplateURL": _ref(P_ADDONS_URL),
                    "Parameters": params,
                },
            }
        }

    def _custom_resource_functions(self) -> Dict[str, Any]:
        resources: Dict[str, Any] = {}
        for fn_name, url in sorted(self._rc.custom_resources_urls.items()):
            try:
                bucket, key = parse_url(url)
            except ValueError as e:
                raise DeployConfigurationError(str(e), [f"custom resource {fn_name}"]) from e
            resources[fn_name] = {
                "Type": "AWS::Lambda::Function",
                "Properties": {
                    "Code": {"S3Bucket": bucket, "S3Key": key},
                    "Handler": "index.handler",
                    "Timeout": 900,
                    "MemorySize": 512,
                    "Runtime": CUSTOM_RESOURCE_RUNTIME,
                },
            }
        return resources

    def _parameters_section(self) -> Dict[str, Any]:
        return {p.key: {"Type": "String"} for p in self.parameters()}

    def _workload_resources(self) -> Dict[str, Any]:
        return {}

    def _outputs(self) -> Dict[str, Any]:
        return {}

    def _document(self) -> Dict[str, Any]:
        resources = self._base_resources()
        resources.update(self._workload_resources())
        resources.update(self._addons_resources())
        resources.update(self._custom_resource_functions())
        return {
            "AWSTemplateFormatVersion": TEMPLATE_VERSION,
            "Description": self._description(),
            "Metadata": manifest_metadata(self._rc.env_version, self._manifest.raw_manifest),
            "Parameters": self._parameters_section(),
            "Conditions": {
                "HasAddons": {"Fn::Not": [{"Fn::Equals": [_ref(P_ADDONS_URL), ""]}]},
                "HasEnvFile": {"Fn::Not": [{"Fn::Equals": [_ref(P_ENV_FILE), ""]}]},
            },
            "Resources": resources,
            "Outputs": self._outputs(),
        }

    def template(self) -> str:
        return self._renderer.render(self._document())


# ============================================
# BACKEND SERVICE
# ============================================

class BackendServiceStackConfig(WorkloadStackConfig):
    """Service reachable only from inside the environment."""

    def __init__(
        self,
        app: Application,
        env: Environment,
        manifest: BackendServiceManifest,
        runtime: RuntimeConfig,
        renderer: Optional[TemplateRenderer] = None,
    ):
        super().__init__(app, env, manifest, runtime, renderer)
        self._svc = manifest

    def _extra_parameters(self) -> List[StackParameter]:
        main = self._svc.http.main
        port = self._svc.image.port
        return [
            StackParameter(P_CONTAINER_PORT, str(port) if port else ""),
            StackParameter(P_TARGET_CONTAINER, main.target_container or self._svc.name),
            StackParameter(P_TARGET_PORT, str(main.target_port or port or "")),
            StackParameter(P_RULE_PATH, main.path or ""),
        ]

    def _rules(self) -> List[RoutingRule]:
        if self._svc.http.is_empty():
            return []
        return [self._svc.http.main] + list(self._svc.http.additional_rules)

    def _workload_resources(self) -> Dict[str, Any]:
        resources: Dict[str, Any] = {
            "Service": {
                "Type": "AWS::ECS::Service",
                "Properties": {
                    "ServiceName": self._svc.name,
                    "TaskDefinition": _ref("TaskDefinition"),
                    "DesiredCount": _ref(P_COUNT),
                    "ServiceRegistries": [
                        {"RegistryArn": {"Fn::GetAtt": ["DiscoveryService", "Arn"]}}
                    ],
                },
            },
            "DiscoveryService": {
                "Type": "AWS::ServiceDiscovery::Service",
                "Properties": {
                    "Name": self._svc.name,
                    "NamespaceName": self._rc.service_discovery_endpoint,
                },
            },
        }

        for idx, rule in enumerate(self._rules()):
            suffix = "" if idx == 0 else str(idx)
            conditions: List[Dict[str, Any]] = [
                {"Field": "path-pattern", "Values": [self._path_pattern(rule.path)]}
            ]
            if rule.alias:
                conditions.append({"Field": "host-header", "Values": sorted(rule.alias)})
            resources[f"TargetGroup{suffix}"] = {
                "Type": "AWS::ElasticLoadBalancingV2::TargetGroup",
                "Properties": {
                    "HealthCheckPath": rule.healthcheck_path or "/",
                    "Port": rule.target_port or self._svc.image.port,
                    "TargetType": "ip",
                },
            }
            resources[f"InternalListenerRule{suffix}"] = {
                "Type": "AWS::ElasticLoadBalancingV2::ListenerRule",
                "Properties": {
                    "Actions": [{"Type": "forward", "TargetGroupArn": _ref(f"TargetGroup{suffix}")}],
                    "Conditions": conditions,
                    "Priority": {"Fn::GetAtt": ["RulePriorityAction", f"Priority{suffix}"]},
                },
            }

        if "RulePriorityFunction" in self._rc.custom_resources_urls and self._rules():
            resources["RulePriorityAction"] = {
                "Type": "Custom::RulePriorityFunction",
                "Properties": {
                    "ServiceToken": {"Fn::GetAtt": ["RulePriorityFunction", "Arn"]},
                    "RulePath": [self._path_pattern(r.path) for r in self._rules()],
                },
            }
        if "DynamicDesiredCountFunction" in self._rc.custom_resources_urls:
            resources["DynamicDesiredCountAction"] = {
                "Type": "Custom::DynamicDesiredCountFunction",
                "Properties": {
                    "ServiceToken": {"Fn::GetAtt": ["DynamicDesiredCountFunction", "Arn"]},
                    "DefaultDesiredCount": _ref(P_COUNT),
                },
            }
        return resources

    @staticmethod
    def _path_pattern(path: Optional[str]) -> str:
        if not path or path == "/":
            return "/*"
        return "/" + path.strip("/") + "*"

    def _outputs(self) -> Dict[str, Any]:
        return {
            "DiscoveryServiceARN": {
                "Value": {"Fn::GetAtt": ["DiscoveryService", "Arn"]},
            }
        }


# ============================================
# WORKER SERVICE
# ============================================

WORKER_QUEUE_URI_VAR = "WORKER_QUEUE_URI"
WORKER_TOPIC_QUEUE_URIS_VAR = "WORKER_TOPIC_QUEUE_URIS"


def _queue_properties(queue: SQSQueue, dead_letter: Optional[str] = None) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    if queue.retention_seconds is not None:
        props["MessageRetentionPeriod"] = queue.retention_seconds
    if queue.delay_seconds is not None:
        props["DelaySeconds"] = queue.delay_seconds
    if queue.timeout_seconds is not None:
        props["VisibilityTimeout"] = queue.timeout_seconds
    if queue.fifo:
        props["FifoQueue"] = True
    if dead_letter and queue.dead_letter_tries:
        props["RedrivePolicy"] = {
            "deadLetterTargetArn": {"Fn::GetAtt": [dead_letter, "Arn"]},
            "maxReceiveCount": queue.dead_letter_tries,
        }
    return props


class WorkerServiceStackConfig(WorkloadStackConfig):
    """Service consuming messages from topics published by other services."""

    def __init__(
        self,
        app: Application,
        env: Environment,
        manifest: WorkerServiceManifest,
        runtime: RuntimeConfig,
        renderer: Optional[TemplateRenderer] = None,
    ):
        super().__init__(app, env, manifest, runtime, renderer)
        self._svc = manifest

    def _topic_queues(self) -> Dict[str, SQSQueue]:
        """Queue logical IDs for subscriptions that declared their own queue."""
        return {
            topic_queue_name(sub.service, sub.name): sub.queue
            for sub in self._svc.subscriptions
            if sub.has_dedicated_queue()
        }

    def _container_environment(self) -> Dict[str, Any]:
        env = super()._container_environment()
        env[WORKER_QUEUE_URI_VAR] = _ref("EventsQueue")
        queues = self._topic_queues()
        if queues:
            body = json.dumps({name: "${" + name + "}" for name in sorted(queues)}, sort_keys=True)
            env[WORKER_TOPIC_QUEUE_URIS_VAR] = {"Fn::Sub": body}
        return env

    def _workload_resources(self) -> Dict[str, Any]:
        dlq = "DeadLetterQueue" if self._svc.queue.dead_letter_tries else None
        resources: Dict[str, Any] = {
            "Service": {
                "Type": "AWS::ECS::Service",
                "Properties": {
                    "ServiceName": self._svc.name,
                    "TaskDefinition": _ref("TaskDefinition"),
                    "DesiredCount": _ref(P_COUNT),
                },
            },
            "EventsQueue": {
                "Type": "AWS::SQS::Queue",
                "Properties": _queue_properties(self._svc.queue, dlq),
            },
        }
        if dlq:
            resources[dlq] = {"Type": "AWS::SQS::Queue", "Properties": {}}

        dedicated = self._topic_queues()
        for sub in self._svc.subscriptions:
            name = resource_name(self._app.name, self._env.name, sub.service, sub.name)
            arn = topic_arn(self._env.region, self._env.account_id, name)
            queue_id = topic_queue_name(sub.service, sub.name)
            target = queue_id if queue_id in dedicated else "EventsQueue"
            if queue_id in dedicated:
                resources[queue_id] = {
                    "Type": "AWS::SQS::Queue",
                    "Properties": _queue_properties(dedicated[queue_id]),
                }
            resources[f"{logical_id(sub.service)}{logical_id(sub.name)}Subscription"] = {
                "Type": "AWS::SNS::Subscription",
                "Properties": {
                    "TopicArn": arn,
                    "Protocol": "sqs",
                    "Endpoint": {"Fn::GetAtt": [target, "Arn"]},
                },
            }

        if "BacklogPerTaskCalculatorFunction" in self._rc.custom_resources_urls:
            resources["BacklogPerTaskCalculatorAction"] = {
                "Type": "AWS::Events::Rule",
                "Properties": {
                    "ScheduleExpression": "rate(1 minute)",
                    "Targets": [
                        {
                            "Id": "BacklogPerTaskCalculatorFunction",
                            "Arn": {"Fn::GetAtt": ["BacklogPerTaskCalculatorFunction", "Arn"]},
                        }
                    ],
                },
            }
        return resources

    def _outputs(self) -> Dict[str, Any]:
        return {"EventsQueueURL": {"Value": _ref("EventsQueue")}}


# ============================================
# SCHEDULED JOB
# ============================================

_PREDEFINED_SCHEDULES = {
    "@yearly": "cron(0 0 1 1 ? *)",
    "@annually": "cron(0 0 1 1 ? *)",
    "@monthly": "cron(0 0 1 * ? *)",
    "@weekly": "cron(0 0 ? * 1 *)",
    "@daily": "cron(0 0 * * ? *)",
    "@midnight": "cron(0 0 * * ? *)",
    "@hourly": "cron(0 * * * ? *)",
}

_EVERY = re.compile(r"^@every\s+(\d+)([smh])$")
_UNITS = {"m": "minute", "h": "hour"}


def schedule_expression(schedule: str) -> str:
    """Translate a manifest schedule into a control-plane schedule expression.

    Returns "" for "none".
    """
    schedule = schedule.strip()
    if schedule in ("", "none"):
        return ""
    if schedule in _PREDEFINED_SCHEDULES:
        return _PREDEFINED_SCHEDULES[schedule]

    match = _EVERY.match(schedule)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if unit == "s":
            if amount % 60:
                raise DeployConfigurationError(f"schedule {schedule} must be a whole number of minutes")
            amount, unit = amount // 60, "m"
        name = _UNITS[unit] if amount == 1 else _UNITS[unit] + "s"
        return f"rate({amount} {name})"

    fields = schedule.split()
    if len(fields) != 5:
        raise DeployConfigurationError(f"schedule {schedule} is not a valid cron expression")
    minute, hour, dom, month, dow = fields
    if dom == "*" and dow != "*":
        dom = "?"
    else:
        dow = "?" if dow == "*" else dow
    return f"cron({minute} {hour} {dom} {month} {dow} *)"


class ScheduledJobStackConfig(WorkloadStackConfig):
    """Task run on a schedule with retries and a timeout."""

    def __init__(
        self,
        app: Application,
        env: Environment,
        manifest: ScheduledJobManifest,
        runtime: RuntimeConfig,
        renderer: Optional[TemplateRenderer] = None,
    ):
        super().__init__(app, env, manifest, runtime, renderer)
        self._job = manifest

    def _extra_parameters(self) -> List[StackParameter]:
        return [
            StackParameter("Schedule", schedule_expression(self._job.schedule)),
            StackParameter("Retries", str(self._job.retries)),
            StackParameter("Timeout", self._job.timeout or ""),
        ]

    def _workload_resources(self) -> Dict[str, Any]:
        resources: Dict[str, Any] = {
            "StateMachine": {
                "Type": "AWS::StepFunctions::StateMachine",
                "Properties": {
                    "StateMachineName": self.stack_name,
                    "DefinitionSubstitutions": {
                        "TaskDefinition": _ref("TaskDefinition"),
                        "Retries": _ref("Retries"),
                    },
                },
            },
        }
        if schedule_expression(self._job.schedule):
            resources["Rule"] = {
                "Type": "AWS::Events::Rule",
                "Properties": {
                    "ScheduleExpression": _ref("Schedule"),
                    "Targets": [{"Id": self._job.name, "Arn": _ref("StateMachine")}],
                },
            }
        return resources
