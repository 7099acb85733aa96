# deployment_engine/infrastructure/aws/cloudformation.py
"""
CloudFormation stack client.

Stacks are applied through change sets: create, wait, execute, wait.
Templates are uploaded to the artifact bucket and referenced by URL.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from deployment_engine.core import artifactpath
from deployment_engine.core.clients import RegionalResourcesGetter, StackClient, Uploader
from deployment_engine.core.errors import (
    DeployDependencyError,
    EmptyChangeSetError,
    StackApplyError,
)
from deployment_engine.core.models import RegionalResources, StackApplyOptions, StackParameter
from deployment_engine.core.naming import arn_resource, stack_name_for_app_region

logger = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

# Change set status reasons that mean "nothing to do"
_EMPTY_CHANGE_SET_REASONS = (
    "The submitted information didn't contain changes",
    "No updates are to be performed",
)

_WAITER_CONFIG = {"Delay": 5, "MaxAttempts": 720}


def _is_not_found(e: ClientError) -> bool:
    return "does not exist" in str(e)


class CloudFormationStackClient(StackClient):

    def __init__(self, cfn_client, uploader: Optional[Uploader] = None):
        self._cfn = cfn_client
        self._uploader = uploader

    # -------------------------
    # Reads
    # -------------------------

    def _describe(self, stack_name: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._cfn.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise DeployDependencyError(str(e), [f"describe stack {stack_name}"]) from e
        except BotoCoreError as e:
            raise DeployDependencyError(str(e), [f"describe stack {stack_name}"]) from e
        stacks = resp.get("Stacks", [])
        return stacks[0] if stacks else None

    def deployed_parameters(self, stack_name: str) -> List[StackParameter]:
        stack = self._describe(stack_name)
        if stack is None:
            return []
        return [
            StackParameter(p["ParameterKey"], p.get("ParameterValue", ""))
            for p in stack.get("Parameters", [])
        ]

    def stack_output(self, stack_name: str, output_key: str) -> str:
        stack = self._describe(stack_name)
        if stack is None:
            return ""
        for output in stack.get("Outputs", []):
            if output["OutputKey"] == output_key:
                return output.get("OutputValue", "")
        return ""

    def outputs(self, stack_name: str) -> Dict[str, str]:
        stack = self._describe(stack_name)
        if stack is None:
            return {}
        return {o["OutputKey"]: o.get("OutputValue", "") for o in stack.get("Outputs", [])}

    # -------------------------
    # Apply
    # -------------------------

    def _template_source(self, stack_name: str, template: str, bucket: str) -> Dict[str, str]:
        if self._uploader is None or not bucket:
            return {"TemplateBody": template}
        body = template.encode("utf-8")
        url = self._uploader.upload(bucket, artifactpath.stack_template(stack_name, body), body)
        return {"TemplateURL": url}

    def deploy(
        self,
        stack_name: str,
        template: str,
        parameters: List[StackParameter],
        tags: Dict[str, str],
        bucket: str,
        options: StackApplyOptions,
    ) -> None:
        existing = self._describe(stack_name)
        is_update = existing is not None and existing.get("StackStatus") != "REVIEW_IN_PROGRESS"
        change_set_name = f"deploy-{uuid4().hex[:16]}"

        request: Dict[str, Any] = {
            "StackName": stack_name,
            "ChangeSetName": change_set_name,
            "ChangeSetType": "UPDATE" if is_update else "CREATE",
            "Parameters": [
                {"ParameterKey": p.key, "ParameterValue": p.value} for p in parameters
            ],
            "Tags": [{"Key": k, "Value": v} for k, v in sorted(tags.items())],
            "Capabilities": CAPABILITIES,
        }
        request.update(self._template_source(stack_name, template, bucket))
        if options.role_arn:
            request["RoleARN"] = options.role_arn

        logger.info(f"[cloudformation] creating {request['ChangeSetType']} change set for {stack_name}")
        try:
            self._cfn.create_change_set(**request)
        except (ClientError, BotoCoreError) as e:
            raise StackApplyError(str(e), [f"create change set {change_set_name} for stack {stack_name}"]) from e

        self._wait_for_change_set(stack_name, change_set_name)

        try:
            self._cfn.execute_change_set(
                ChangeSetName=change_set_name,
                StackName=stack_name,
                DisableRollback=options.disable_rollback,
            )
        except (ClientError, BotoCoreError) as e:
            raise StackApplyError(str(e), [f"execute change set {change_set_name} for stack {stack_name}"]) from e

        waiter_name = "stack_update_complete" if is_update else "stack_create_complete"
        try:
            self._cfn.get_waiter(waiter_name).wait(StackName=stack_name, WaiterConfig=_WAITER_CONFIG)
        except WaiterError as e:
            status = self._status_reason(stack_name)
            raise StackApplyError(status or str(e), [f"wait for stack {stack_name}"]) from e

        logger.info(f"[cloudformation] ✅ stack {stack_name} deployed")

    def _wait_for_change_set(self, stack_name: str, change_set_name: str) -> None:
        try:
            self._cfn.get_waiter("change_set_create_complete").wait(
                StackName=stack_name,
                ChangeSetName=change_set_name,
                WaiterConfig=_WAITER_CONFIG,
            )
            return
        except WaiterError as e:
            waiter_error = e

        try:
            desc = self._cfn.describe_change_set(StackName=stack_name, ChangeSetName=change_set_name)
        except (ClientError, BotoCoreError) as e:
            raise StackApplyError(str(e), [f"describe change set {change_set_name}"]) from e

        reason = desc.get("StatusReason", "")
        if any(r in reason for r in _EMPTY_CHANGE_SET_REASONS):
            try:
                self._cfn.delete_change_set(StackName=stack_name, ChangeSetName=change_set_name)
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"[cloudformation] could not delete empty change set {change_set_name}: {e}")
            raise EmptyChangeSetError(stack_name)

        raise StackApplyError(
            reason or str(waiter_error),
            [f"wait for change set {change_set_name} of stack {stack_name}"],
        ) from waiter_error

    def _status_reason(self, stack_name: str) -> str:
        stack = self._describe(stack_name)
        if stack is None:
            return ""
        status = stack.get("StackStatus", "")
        reason = stack.get("StackStatusReason", "")
        return f"{status}: {reason}" if reason else status


# ============================================
# REGIONAL RESOURCES
# ============================================

class CloudFormationRegionalResourcesGetter(RegionalResourcesGetter):
    """
    Reads the application's regional stack outputs.

    ``PipelineBucket`` is the artifact bucket, ``KMSKeyARN`` its key, and
    every ``ECRRepo*`` output an image repository ARN.
    """

    def __init__(self, client_for_region):
        self._client_for_region = client_for_region

    def get_app_resources_by_region(self, app: str, region: str) -> RegionalResources:
        client = CloudFormationStackClient(self._client_for_region(region))
        stack_name = stack_name_for_app_region(app)
        outputs = client.outputs(stack_name)

        repos: Dict[str, str] = {}
        for key, value in outputs.items():
            if not key.startswith("ECRRepo"):
                continue
            url = _repository_url(value)
            if not url:
                continue
            name = url.rsplit("/", 1)[-1]
            repos[name] = url

        return RegionalResources(
            region=region,
            s3_bucket=outputs.get("PipelineBucket", ""),
            kms_key_arn=outputs.get("KMSKeyARN", ""),
            repository_urls=repos,
        )


def _repository_url(repo_arn: str) -> str:
    """arn:aws:ecr:<region>:<account>:repository/<name> -> registry URL."""
    parts = repo_arn.split(":")
    resource = arn_resource(repo_arn)
    if not resource.startswith("repository/"):
        return ""
    region, account = parts[3], parts[4]
    suffix = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
    return f"{account}.dkr.ecr.{region}.{suffix}/{resource[len('repository/'):]}"
