#tests\test_aws_adapters.py

"""Test the AWS adapters against fake boto3 clients."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError, WaiterError

from deployment_engine.core.errors import (
    DeployConfigurationError,
    DeployDependencyError,
    EmptyChangeSetError,
    StackApplyError,
)
from deployment_engine.core.models import StackApplyOptions, StackParameter
from deployment_engine.infrastructure.aws.acm import ACMAliasCertValidator
from deployment_engine.infrastructure.aws.cloudformation import (
    CloudFormationRegionalResourcesGetter,
    CloudFormationStackClient,
    _repository_url,
)
from deployment_engine.infrastructure.aws.ecs import ECSServiceForceUpdater
from deployment_engine.infrastructure.aws.s3 import S3Uploader
from deployment_engine.infrastructure.aws.sns import SNSTopicLister
from deployment_engine.infrastructure.memory.clients import InMemoryUploader


def _client_error(operation, message, code="ValidationError"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


# -------------------------
# FAKE CLIENTS
# -------------------------

class FakeS3:
    def __init__(self, error=None):
        self.meta = SimpleNamespace(region_name="us-west-2")
        self.puts = []
        self._error = error

    def put_object(self, **kwargs):
        if self._error:
            raise self._error
        self.puts.append(kwargs)
        return {}


class FakePaginator:
    def __init__(self, pages):
        self._pages = pages

    def paginate(self):
        return iter(self._pages)


class FakeSNS:
    def __init__(self, pages):
        self._pages = pages

    def get_paginator(self, name):
        assert name == "list_topics"
        return FakePaginator(self._pages)


class FakeACM:
    def __init__(self, certs):
        self._certs = certs

    def describe_certificate(self, CertificateArn):
        if CertificateArn not in self._certs:
            raise _client_error("DescribeCertificate", "not found", code="ResourceNotFoundException")
        return {"Certificate": self._certs[CertificateArn]}


class FakeWaiter:
    def __init__(self, name, error=None):
        self.name = name
        self._error = error

    def wait(self, **kwargs):
        if self._error:
            raise self._error


class FakeCloudFormation:
    def __init__(self, stacks=None, waiter_errors=None, change_set_reason=""):
        self.stacks = stacks or {}
        self.calls = []
        self._waiter_errors = waiter_errors or {}
        self._change_set_reason = change_set_reason

    def describe_stacks(self, StackName):
        self.calls.append("describe_stacks")
        if StackName not in self.stacks:
            raise _client_error("DescribeStacks", f"Stack with id {StackName} does not exist")
        return {"Stacks": [self.stacks[StackName]]}

    def create_change_set(self, **kwargs):
        self.calls.append("create_change_set")
        self.change_set_request = kwargs
        return {"Id": "cs-id", "StackId": "stack-id"}

    def describe_change_set(self, StackName, ChangeSetName):
        self.calls.append("describe_change_set")
        return {"Status": "FAILED", "StatusReason": self._change_set_reason}

    def delete_change_set(self, StackName, ChangeSetName):
        self.calls.append("delete_change_set")
        return {}

    def execute_change_set(self, **kwargs):
        self.calls.append("execute_change_set")
        self.execute_request = kwargs
        return {}

    def get_waiter(self, name):
        self.calls.append(f"wait:{name}")
        return FakeWaiter(name, self._waiter_errors.get(name))


def _waiter_error(name):
    return WaiterError(name=name, reason="Waiter encountered a terminal failure state", last_response={})


# -------------------------
# S3 / SNS / ACM
# -------------------------

class TestS3Uploader:

    def test_upload_returns_object_url(self):
        s3 = FakeS3()

        url = S3Uploader(s3).upload("demo-artifacts", "manual/addons/api/abc.json", b"{}")

        assert url == "https://demo-artifacts.s3.us-west-2.amazonaws.com/manual/addons/api/abc.json"
        assert s3.puts[0]["Bucket"] == "demo-artifacts"

    def test_upload_error(self):
        s3 = FakeS3(error=_client_error("PutObject", "Access Denied", code="AccessDenied"))

        with pytest.raises(DeployDependencyError) as exc:
            S3Uploader(s3).upload("demo-artifacts", "k", b"")

        assert str(exc.value).startswith("put object k to bucket demo-artifacts: ")


class TestSNSTopicLister:

    def test_filters_by_environment_prefix(self):
        arn = "arn:aws:sns:us-west-2:123456789012:{}"
        sns = FakeSNS([
            {"Topics": [{"TopicArn": arn.format("demo-test-orders-events")}]},
            {"Topics": [
                {"TopicArn": arn.format("demo-prod-orders-events")},
                {"TopicArn": arn.format("demo-test-payments-refunds")},
            ]},
        ])

        topics = SNSTopicLister(sns).list_topics("demo", "test")

        assert [t.name for t in topics] == ["demo-test-orders-events", "demo-test-payments-refunds"]
        assert topics[0].arn == arn.format("demo-test-orders-events")


class TestACMAliasCertValidator:

    @pytest.fixture
    def acm(self, cert_arn):
        return FakeACM({
            cert_arn: {"DomainName": "demo.example.com", "SubjectAlternativeNames": ["*.demo.example.com"]},
        })

    def test_wildcard_covers_one_label(self, acm, cert_arn):
        validator = ACMAliasCertValidator(acm)

        validator.validate_cert_aliases(["api.demo.example.com", "demo.example.com"], [cert_arn])

        with pytest.raises(DeployConfigurationError):
            validator.validate_cert_aliases(["a.b.demo.example.com"], [cert_arn])

    def test_describe_failure(self, acm):
        with pytest.raises(DeployDependencyError) as exc:
            ACMAliasCertValidator(acm).validate_cert_aliases(["x"], ["arn:aws:acm:us-west-2:1:certificate/missing"])

        assert "describe certificate" in str(exc.value)


# -------------------------
# CLOUDFORMATION
# -------------------------

class TestCloudFormationStackClient:

    def test_missing_stack_reads_empty(self):
        client = CloudFormationStackClient(FakeCloudFormation())

        assert client.deployed_parameters("demo-test") == []
        assert client.stack_output("demo-test", "LastForceDeployID") == ""

    def test_reads_parameters_and_outputs(self):
        cfn = FakeCloudFormation(stacks={
            "demo-test": {
                "StackName": "demo-test",
                "StackStatus": "UPDATE_COMPLETE",
                "Parameters": [{"ParameterKey": "VPCCIDR", "ParameterValue": "10.0.0.0/16"}],
                "Outputs": [{"OutputKey": "EnvironmentVersion", "OutputValue": "v1.5.0"}],
            }
        })
        client = CloudFormationStackClient(cfn)

        assert client.deployed_parameters("demo-test") == [StackParameter("VPCCIDR", "10.0.0.0/16")]
        assert client.environment_version("demo-test") == "v1.5.0"
        assert client.force_update_output_id("demo-test") == ""

    def test_describe_error_is_dependency_error(self):
        class Throttled(FakeCloudFormation):
            def describe_stacks(self, StackName):
                raise _client_error("DescribeStacks", "Rate exceeded", code="Throttling")

        with pytest.raises(DeployDependencyError):
            CloudFormationStackClient(Throttled()).deployed_parameters("demo-test")

    def test_create_new_stack(self):
        cfn = FakeCloudFormation()
        options = StackApplyOptions(role_arn="arn:aws:iam::123456789012:role/exec", disable_rollback=True)

        CloudFormationStackClient(cfn).deploy(
            "demo-test-api", "{}", [StackParameter("AppName", "demo")], {"b": "2", "a": "1"}, "", options,
        )

        assert cfn.calls == [
            "describe_stacks",
            "create_change_set",
            "wait:change_set_create_complete",
            "execute_change_set",
            "wait:stack_create_complete",
        ]
        request = cfn.change_set_request
        assert request["ChangeSetType"] == "CREATE"
        assert request["TemplateBody"] == "{}"
        assert request["RoleARN"] == options.role_arn
        assert request["Tags"] == [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}]
        assert cfn.execute_request["DisableRollback"] is True

    def test_update_uploads_template(self):
        cfn = FakeCloudFormation(stacks={"demo-test-api": {"StackName": "demo-test-api", "StackStatus": "CREATE_COMPLETE"}})
        uploader = InMemoryUploader()

        CloudFormationStackClient(cfn, uploader=uploader).deploy(
            "demo-test-api", "{}", [], {}, "demo-artifacts", StackApplyOptions(),
        )

        assert cfn.change_set_request["ChangeSetType"] == "UPDATE"
        assert cfn.change_set_request["TemplateURL"].startswith("https://demo-artifacts.s3.us-west-2.amazonaws.com/manual/templates/demo-test-api/")
        assert "RoleARN" not in cfn.change_set_request
        assert cfn.calls[-1] == "wait:stack_update_complete"

    def test_empty_change_set(self):
        cfn = FakeCloudFormation(
            waiter_errors={"change_set_create_complete": _waiter_error("ChangeSetCreateComplete")},
            change_set_reason="The submitted information didn't contain changes. Submit different information to create a change set.",
        )

        with pytest.raises(EmptyChangeSetError):
            CloudFormationStackClient(cfn).deploy("demo-test", "{}", [], {}, "", StackApplyOptions())

        assert "delete_change_set" in cfn.calls
        assert "execute_change_set" not in cfn.calls

    def test_failed_change_set(self):
        cfn = FakeCloudFormation(
            waiter_errors={"change_set_create_complete": _waiter_error("ChangeSetCreateComplete")},
            change_set_reason="Template format error",
        )

        with pytest.raises(StackApplyError) as exc:
            CloudFormationStackClient(cfn).deploy("demo-test", "{}", [], {}, "", StackApplyOptions())

        assert not isinstance(exc.value, EmptyChangeSetError)
        assert str(exc.value).endswith("Template format error")

    def test_rollback_reports_stack_status(self):
        class RolledBack(FakeCloudFormation):
            def execute_change_set(self, **kwargs):
                super().execute_change_set(**kwargs)
                self.stacks["demo-test"] = {
                    "StackName": "demo-test",
                    "StackStatus": "ROLLBACK_COMPLETE",
                    "StackStatusReason": "Resource creation cancelled",
                }

        cfn = RolledBack(waiter_errors={"stack_create_complete": _waiter_error("StackCreateComplete")})

        with pytest.raises(StackApplyError) as exc:
            CloudFormationStackClient(cfn).deploy("demo-test", "{}", [], {}, "", StackApplyOptions())

        assert str(exc.value) == "wait for stack demo-test: ROLLBACK_COMPLETE: Resource creation cancelled"


class TestRegionalResourcesGetter:

    def test_reads_regional_stack_outputs(self):
        cfn = FakeCloudFormation(stacks={
            "demo-infrastructure-regional": {
                "StackName": "demo-infrastructure-regional",
                "StackStatus": "UPDATE_COMPLETE",
                "Outputs": [
                    {"OutputKey": "PipelineBucket", "OutputValue": "demo-artifacts"},
                    {"OutputKey": "KMSKeyARN", "OutputValue": "arn:aws:kms:us-west-2:123456789012:key/abc"},
                    {"OutputKey": "ECRRepoapi", "OutputValue": "arn:aws:ecr:us-west-2:123456789012:repository/demo/api"},
                ],
            }
        })
        regions = []

        def client_for_region(region):
            regions.append(region)
            return cfn

        resources = CloudFormationRegionalResourcesGetter(client_for_region).get_app_resources_by_region("demo", "us-west-2")

        assert regions == ["us-west-2"]
        assert resources.s3_bucket == "demo-artifacts"
        assert resources.repository_urls == {"api": "123456789012.dkr.ecr.us-west-2.amazonaws.com/demo/api"}

    @pytest.mark.parametrize("arn,expected", [
        ("arn:aws:ecr:us-west-2:123456789012:repository/demo/api", "123456789012.dkr.ecr.us-west-2.amazonaws.com/demo/api"),
        ("arn:aws-cn:ecr:cn-north-1:123456789012:repository/demo/api", "123456789012.dkr.ecr.cn-north-1.amazonaws.com.cn/demo/api"),
        ("arn:aws:s3:::demo-artifacts", ""),
    ])
    def test_repository_url(self, arn, expected):
        assert _repository_url(arn) == expected


# -------------------------
# ECS
# -------------------------

SERVICE_ARN = "arn:aws:ecs:us-west-2:123456789012:service/demo-test-Cluster/demo-test-api-Service"


class FakeTagging:
    def __init__(self, arns):
        self.requests = []
        self._arns = arns

    def get_resources(self, **kwargs):
        self.requests.append(kwargs)
        return {"ResourceTagMappingList": [{"ResourceARN": arn} for arn in self._arns]}


class FakeECS:
    def __init__(self, deployments=None, waiter_error=None):
        self.updates = []
        self.waits = []
        self._deployments = deployments or []
        self._waiter_error = waiter_error

    def describe_services(self, cluster, services):
        return {"services": [{"serviceName": services[0], "deployments": self._deployments}]}

    def update_service(self, **kwargs):
        self.updates.append(kwargs)
        return {}

    def get_waiter(self, name):
        self.waits.append(name)
        return FakeWaiter(name, self._waiter_error)


class TestECSServiceForceUpdater:

    def test_force_update_finds_service_by_tags(self):
        ecs = FakeECS()
        tagging = FakeTagging([SERVICE_ARN])

        ECSServiceForceUpdater(ecs, tagging).force_update_service("demo", "test", "api")

        assert ecs.updates == [{
            "cluster": "demo-test-Cluster",
            "service": "demo-test-api-Service",
            "forceNewDeployment": True,
        }]
        assert ecs.waits == ["services_stable"]
        assert tagging.requests[0]["ResourceTypeFilters"] == ["ecs:service"]
        assert {"Key": "deploy-workload", "Values": ["api"]} in tagging.requests[0]["TagFilters"]

    def test_last_updated_at_reads_primary_deployment(self):
        updated = datetime(2024, 5, 1, tzinfo=timezone.utc)
        ecs = FakeECS(deployments=[
            {"status": "ACTIVE", "updatedAt": datetime(2024, 4, 1, tzinfo=timezone.utc)},
            {"status": "PRIMARY", "updatedAt": updated},
        ])

        assert ECSServiceForceUpdater(ecs, FakeTagging([SERVICE_ARN])).last_updated_at("demo", "test", "api") == updated

    def test_service_not_found(self):
        with pytest.raises(DeployDependencyError) as exc:
            ECSServiceForceUpdater(FakeECS(), FakeTagging([])).force_update_service("demo", "test", "api")

        assert "found 0" in str(exc.value)

    def test_unstable_service(self):
        ecs = FakeECS(waiter_error=_waiter_error("ServicesStable"))

        with pytest.raises(DeployDependencyError) as exc:
            ECSServiceForceUpdater(ecs, FakeTagging([SERVICE_ARN])).force_update_service("demo", "test", "api")

        assert str(exc.value).startswith("force an update for service api: wait for service demo-test-api-Service")
