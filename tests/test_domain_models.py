#tests\test_domain_models.py

"""Test domain models, errors and naming."""

import pytest

from deployment_engine.core.errors import (
    DeployConfigurationError,
    DeployDependencyError,
    ErrorKind,
    RegionalResourcesError,
)
from deployment_engine.core.models import (
    ContainerImageIdentifier,
    DeploymentRecord,
    DeploymentState,
    PushedImage,
    UploadArtifactsOutput,
)
from deployment_engine.core import naming


class TestDeploymentRecord:
    """Test deployment record state machine."""

    @pytest.fixture
    def record(self):
        return DeploymentRecord(
            app_name="demo",
            env_name="test",
            workload_name="api",
            workload_type="Backend Service",
        )

    # -------------------------
    # STATE TRANSITION TESTS
    # -------------------------

    def test_initial_state(self, record):
        """Test record starts PENDING."""
        assert record.state == DeploymentState.PENDING
        assert record.finished_at is None
        assert not record.is_terminal()

    def test_applied_path(self, record):
        """Test PENDING -> VALIDATED -> APPLYING -> APPLIED."""
        record.validated()
        record.applying()
        record.applied(["do something"])

        assert record.state == DeploymentState.APPLIED
        assert record.recommended_actions == ["do something"]
        assert record.finished_at is not None
        assert record.is_terminal()

    def test_rejected_from_pending(self, record):
        """Test validation failure rejects the record."""
        record.rejected("bad alias")

        assert record.state == DeploymentState.REJECTED
        assert record.error_message == "bad alias"
        assert record.is_terminal()

    def test_failed_while_applying(self, record):
        """Test apply failure fails the record."""
        record.validated()
        record.applying()
        record.failed("stack rolled back")

        assert record.state == DeploymentState.FAILED
        assert record.error_message == "stack rolled back"

    # -------------------------
    # INVALID TRANSITIONS
    # -------------------------

    def test_apply_before_validate_fails(self, record):
        with pytest.raises(ValueError):
            record.applying()

    def test_reject_after_validate_fails(self, record):
        """Test a validated record can no longer be rejected."""
        record.validated()

        with pytest.raises(ValueError):
            record.rejected("too late")

    def test_fail_from_pending_fails(self, record):
        with pytest.raises(ValueError):
            record.failed("nothing was applied")

    def test_applied_is_final(self, record):
        record.validated()
        record.applying()
        record.applied()

        with pytest.raises(ValueError):
            record.failed("after the fact")


class TestDeployError:
    """Test structured error chain."""

    def test_wrap_prepends_context(self):
        err = DeployDependencyError("access denied")
        err.wrap("create change set").wrap("deploy service")

        assert str(err) == "deploy service: create change set: access denied"
        assert err.message == "access denied"

    def test_kinds(self):
        assert DeployConfigurationError("x").kind == ErrorKind.CONFIGURATION
        assert DeployDependencyError("x").kind == ErrorKind.DEPENDENCY
        assert RegionalResourcesError("x").kind == ErrorKind.INVARIANT


class TestImages:

    def test_pushed_image_uri_prefers_digest(self):
        image = PushedImage("repo/api", "v1", "sha256:abc", "api", "api")
        assert image.uri() == "repo/api@sha256:abc"

    def test_pushed_image_uri_falls_back_to_tag(self):
        assert PushedImage("repo/api", "v1", "", "api", "api").uri() == "repo/api:v1"
        assert PushedImage("repo/api", "", "", "api", "api").uri() == "repo/api:latest"

    def test_identifier_tag_prefers_custom_tag(self):
        assert ContainerImageIdentifier("d", "release", "abc123").tag == "release"
        assert ContainerImageIdentifier("d", "", "abc123").tag == "abc123"

    def test_upload_output_locations(self):
        out = UploadArtifactsOutput(
            image_digests={"api": ContainerImageIdentifier(digest="sha256:1")},
            env_file_arns={"api": "arn:aws:s3:::bucket/api.env"},
            addons_url="https://bucket.s3.us-west-2.amazonaws.com/addons.json",
            custom_resource_urls={"EnvControllerFunction": "https://bucket/x.zip"},
        )

        assert out.locations() == {
            "image/api": "sha256:1",
            "env-file/api": "arn:aws:s3:::bucket/api.env",
            "addons": "https://bucket.s3.us-west-2.amazonaws.com/addons.json",
            "custom-resource/EnvControllerFunction": "https://bucket/x.zip",
        }


class TestNaming:

    def test_resource_name(self):
        assert naming.resource_name("demo", "test", "orders", "events") == "demo-test-orders-events"

    def test_arn_resource(self):
        arn = "arn:aws:sns:us-west-2:123456789012:demo-test-orders-events"
        assert naming.arn_resource(arn) == "demo-test-orders-events"
        assert naming.arn_resource("not-an-arn") == ""

    def test_partition(self):
        assert naming.partition_for_region("us-west-2") == "aws"
        assert naming.partition_for_region("cn-north-1") == "aws-cn"
        assert naming.partition_for_region("us-gov-west-1") == "aws-us-gov"

    def test_topic_queue_name(self):
        assert naming.topic_queue_name("orders", "events") == "ordersEventsEventsQueue"
        assert naming.topic_queue_name("order-svc", "new_items") == "ordersvcNewitemsEventsQueue"

    @pytest.mark.parametrize("alias,san,expected", [
        ("api.example.com", "api.example.com", True),
        ("API.example.com.", "api.example.com", True),
        ("api.example.com", "*.example.com", True),
        ("v1.api.example.com", "*.example.com", False),
        ("example.com", "*.example.com", False),
        ("web.example.com", "api.example.com", False),
    ])
    def test_domain_matches(self, alias, san, expected):
        assert naming.domain_matches(alias, san) is expected
