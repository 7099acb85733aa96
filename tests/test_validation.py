#tests\test_validation.py

"""Test routing/certificate and subscription validation."""

import pytest

from deployment_engine.core.errors import (
    AliasCertificateMismatchError,
    AliasRequiredError,
    AliasWithoutCertificatesError,
    DeployDependencyError,
    TopicNotFoundError,
)
from deployment_engine.core.models import Topic
from deployment_engine.core.validation import (
    validate_http_rules,
    validate_routing_rule,
    validate_topics_exist,
)
from deployment_engine.infrastructure.memory.clients import InMemoryAliasCertValidator
from deployment_engine.manifest.models import HTTPConfig, RoutingRule, TopicSubscription


@pytest.fixture
def cert_validator(cert_arn):
    return InMemoryAliasCertValidator({cert_arn: ["*.demo.example.com", "demo.example.com"]})


class TestRoutingRule:
    """Test the precedence table, one row per test."""

    def test_empty_rule_passes_without_certs(self, env, cert_validator):
        validate_routing_rule(RoutingRule(), "api", env, cert_validator)

    def test_empty_rule_passes_with_certs(self, env_with_certs, cert_validator):
        validate_routing_rule(RoutingRule(), "api", env_with_certs, cert_validator)
        assert cert_validator.calls == 0

    def test_alias_required_with_certs(self, env_with_certs, cert_validator):
        with pytest.raises(AliasRequiredError) as exc:
            validate_routing_rule(RoutingRule(path="/"), "api", env_with_certs, cert_validator)

        assert '"alias" must be specified for api' in str(exc.value)
        assert "environment test" in str(exc.value)

    def test_no_alias_without_certs_passes(self, env, cert_validator):
        validate_routing_rule(RoutingRule(path="/"), "api", env, cert_validator)

    def test_alias_without_certs_fails(self, env, cert_validator):
        rule = RoutingRule(path="/", alias=["api.example.com"])

        with pytest.raises(AliasWithoutCertificatesError) as exc:
            validate_routing_rule(rule, "api", env, cert_validator)

        assert "alias without certificate-bearing environment" in str(exc.value)
        assert cert_validator.calls == 0

    def test_alias_covered_by_certs_passes(self, env_with_certs, cert_validator):
        rule = RoutingRule(path="/", alias=["api.demo.example.com", "demo.example.com"])

        validate_routing_rule(rule, "api", env_with_certs, cert_validator)

        assert cert_validator.calls == 1

    def test_alias_not_covered_names_environment(self, env_with_certs, cert_validator):
        rule = RoutingRule(path="/", alias=["api.other.com"])

        with pytest.raises(AliasCertificateMismatchError) as exc:
            validate_routing_rule(rule, "api", env_with_certs, cert_validator)

        assert exc.value.env_name == "test"
        assert "for env test" in str(exc.value)
        assert "api.other.com" in str(exc.value)

    def test_validator_dependency_error_propagates(self, env_with_certs):
        class Broken(InMemoryAliasCertValidator):
            def validate_cert_aliases(self, aliases, certs):
                raise DeployDependencyError("describe certificate: throttled")

        rule = RoutingRule(path="/", alias=["api.demo.example.com"])
        with pytest.raises(DeployDependencyError):
            validate_routing_rule(rule, "api", env_with_certs, Broken())


class TestHTTPRules:

    def test_error_tagged_with_primary_rule(self, env):
        http = HTTPConfig(main=RoutingRule(path="/", alias=["api.example.com"]))

        with pytest.raises(AliasWithoutCertificatesError) as exc:
            validate_http_rules(http, "api", env, None)

        assert str(exc.value).startswith('validate "http": ')

    def test_error_tagged_with_additional_rule_index(self, env_with_certs, cert_validator):
        http = HTTPConfig(
            main=RoutingRule(path="/", alias=["api.demo.example.com"]),
            additional_rules=[
                RoutingRule(path="/admin", alias=["admin.demo.example.com"]),
                RoutingRule(path="/legacy"),
            ],
        )

        with pytest.raises(AliasRequiredError) as exc:
            validate_http_rules(http, "api", env_with_certs, cert_validator)

        assert exc.value.context[0] == 'validate "http.additional_rules[1]"'

    def test_all_rules_valid(self, env_with_certs, cert_validator):
        http = HTTPConfig(
            main=RoutingRule(path="/", alias=["api.demo.example.com"]),
            additional_rules=[RoutingRule(path="/admin", alias=["admin.demo.example.com"])],
        )

        validate_http_rules(http, "api", env_with_certs, cert_validator)

        assert cert_validator.calls == 2


class TestTopicSubscriptions:

    def test_missing_topic_names_computed_resource(self):
        topics = [Topic("demo-test-orders-shipping", "arn:aws:sns:us-west-2:123456789012:demo-test-orders-shipping")]
        subs = [TopicSubscription(name="events", service="orders")]

        with pytest.raises(TopicNotFoundError) as exc:
            validate_topics_exist(subs, topics, "demo", "test")

        assert exc.value.topic_name == "demo-test-orders-events"
        assert "topic demo-test-orders-events does not exist in environment test" in str(exc.value)

    def test_existing_topic_passes(self):
        topics = [Topic("events", "arn:aws:sns:us-west-2:123456789012:demo-test-orders-events")]
        subs = [TopicSubscription(name="events", service="orders")]

        validate_topics_exist(subs, topics, "demo", "test")

    def test_match_uses_arn_not_display_name(self):
        """Test only the ARN resource component is compared."""
        topics = [Topic("demo-test-orders-events", "arn:aws:sns:us-west-2:123456789012:something-else")]
        subs = [TopicSubscription(name="events", service="orders")]

        with pytest.raises(TopicNotFoundError):
            validate_topics_exist(subs, topics, "demo", "test")

    def test_unparsable_arns_are_ignored(self):
        topics = [
            Topic("bad", "not-an-arn"),
            Topic("ok", "arn:aws:sns:us-west-2:123456789012:demo-test-orders-events"),
        ]
        subs = [TopicSubscription(name="events", service="orders")]

        validate_topics_exist(subs, topics, "demo", "test")

    def test_no_subscriptions_needs_no_topics(self):
        validate_topics_exist([], [], "demo", "test")
