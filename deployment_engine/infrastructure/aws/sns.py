# deployment_engine/infrastructure/aws/sns.py

from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from deployment_engine.core.clients import TopicLister
from deployment_engine.core.errors import DeployDependencyError
from deployment_engine.core.models import Topic
from deployment_engine.core.naming import arn_resource


class SNSTopicLister(TopicLister):
    """Lists the topics published by services of one environment."""

    def __init__(self, sns_client):
        self._sns = sns_client

    def list_topics(self, app: str, env: str) -> List[Topic]:
        prefix = f"{app}-{env}-"
        topics: List[Topic] = []
        try:
            paginator = self._sns.get_paginator("list_topics")
            for page in paginator.paginate():
                for item in page.get("Topics", []):
                    arn = item["TopicArn"]
                    name = arn_resource(arn)
                    if name.startswith(prefix):
                        topics.append(Topic(name=name, arn=arn))
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"list SNS topics for environment {env}"]) from e
        return topics
