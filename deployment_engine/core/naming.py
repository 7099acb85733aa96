"""Resource and stack naming contracts."""

import re

APP_TAG_KEY = "deploy-application"
ENV_TAG_KEY = "deploy-environment"
WORKLOAD_TAG_KEY = "deploy-workload"

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def resource_name(app: str, env: str, workload: str, name: str) -> str:
    """Name the control plane assigns to a workload-owned resource: app-env-svc-name."""
    return f"{app}-{env}-{workload}-{name}"


def stack_name_for_workload(app: str, env: str, workload: str) -> str:
    return f"{app}-{env}-{workload}"


def stack_name_for_env(app: str, env: str) -> str:
    return f"{app}-{env}"


def stack_name_for_app_region(app: str) -> str:
    return f"{app}-infrastructure-regional"


def service_discovery_endpoint(app: str, env: str) -> str:
    return f"{env}.{app}.local"


def strip_non_alphanumeric(value: str) -> str:
    return _NON_ALPHANUMERIC.sub("", value)


def logical_id(value: str) -> str:
    """Template-safe logical ID from a workload or container name."""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[^A-Za-z0-9]+", value) if part)


def topic_queue_name(service: str, topic: str) -> str:
    """Logical name of the queue dedicated to one topic subscription."""
    svc = strip_non_alphanumeric(service)
    tpc = strip_non_alphanumeric(topic)
    return f"{svc}{tpc.title()}EventsQueue"


def partition_for_region(region: str) -> str:
    if region.startswith("cn-"):
        return "aws-cn"
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    return "aws"


def arn_resource(arn: str) -> str:
    """Resource component of an ARN, or "" if the value is not an ARN."""
    parts = arn.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn":
        return ""
    return parts[5]


def topic_arn(region: str, account_id: str, name: str) -> str:
    return f"arn:{partition_for_region(region)}:sns:{region}:{account_id}:{name}"


def domain_matches(alias: str, san: str) -> bool:
    """Whether a certificate subject name covers the alias. Wildcards match exactly one label."""
    alias = alias.lower().rstrip(".")
    san = san.lower().rstrip(".")
    if san.startswith("*."):
        head, _, rest = alias.partition(".")
        return bool(head) and rest == san[2:]
    return alias == san
