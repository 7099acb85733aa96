# deployment_engine/core/validation.py
"""Pre-mutation checks of a manifest against its target environment."""

import logging
from typing import Iterable, List, Optional, Sequence, Set

from deployment_engine.core.clients import AliasCertValidator
from deployment_engine.core.errors import (
    AliasCertificateMismatchError,
    AliasRequiredError,
    AliasWithoutCertificatesError,
    DeployConfigurationError,
    TopicNotFoundError,
)
from deployment_engine.core.models import Environment, Topic
from deployment_engine.core.naming import arn_resource, resource_name
from deployment_engine.manifest.models import HTTPConfig, RoutingRule, TopicSubscription

logger = logging.getLogger(__name__)


def validate_routing_rule(
    rule: RoutingRule,
    workload: str,
    environment: Environment,
    cert_validator: Optional[AliasCertValidator],
) -> None:
    # -------------------------
    # Nothing exposed
    # -------------------------
    if rule.is_empty():
        return

    certs = environment.imported_certificates

    # -------------------------
    # Alias unset
    # -------------------------
    if not rule.has_alias():
        if certs:
            raise AliasRequiredError(workload, environment.name)
        return

    # -------------------------
    # Alias set
    # -------------------------
    if not certs:
        raise AliasWithoutCertificatesError()

    if cert_validator is None:
        raise DeployConfigurationError("no certificate validator configured")

    try:
        cert_validator.validate_cert_aliases(rule.alias, certs)
    except DeployConfigurationError as e:
        raise AliasCertificateMismatchError(environment.name, e.message) from e


def validate_http_rules(
    http: HTTPConfig,
    workload: str,
    environment: Environment,
    cert_validator: Optional[AliasCertValidator],
) -> None:
    """Check the primary rule and every additional rule, tagging errors with the rule label."""
    labeled = [("http", http.main)]
    for idx, rule in enumerate(http.additional_rules):
        labeled.append((f"http.additional_rules[{idx}]", rule))

    for label, rule in labeled:
        try:
            validate_routing_rule(rule, workload, environment, cert_validator)
        except DeployConfigurationError as e:
            logger.info(f"[validation] rule {label} rejected for {workload}: {e}")
            raise e.wrap(f'validate "{label}"')


def _topic_resource_names(topics: Iterable[Topic]) -> Set[str]:
    names: Set[str] = set()
    for topic in topics:
        name = arn_resource(topic.arn)
        if not name:
            # Unparsable ARNs are ignored
            continue
        names.add(name)
    return names


def validate_topics_exist(
    subscriptions: Sequence[TopicSubscription],
    topics: Iterable[Topic],
    app: str,
    env: str,
) -> None:
    if not subscriptions:
        return

    available = _topic_resource_names(topics)
    for sub in subscriptions:
        expected = resource_name(app, env, sub.service, sub.name)
        if expected not in available:
            raise TopicNotFoundError(expected, env)


class DeployValidator:
    """Groups the checks run in step 2 of every deploy."""

    @staticmethod
    def validate_routing(
        http: HTTPConfig,
        workload: str,
        environment: Environment,
        cert_validator: Optional[AliasCertValidator],
    ) -> None:
        validate_http_rules(http, workload, environment, cert_validator)

    @staticmethod
    def validate_subscriptions(
        subscriptions: Sequence[TopicSubscription],
        topics: List[Topic],
        app: str,
        env: str,
    ) -> None:
        validate_topics_exist(subscriptions, topics, app, env)
