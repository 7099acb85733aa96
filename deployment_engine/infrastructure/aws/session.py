# deployment_engine/infrastructure/aws/session.py
"""Credential and session acquisition."""

import logging
from typing import Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deployment_engine.core.errors import DeployDependencyError

logger = logging.getLogger(__name__)


class SessionProvider:
    """Hands out boto3 sessions, one per (role, region), created on first use."""

    def __init__(self, profile: Optional[str] = None, default_region: Optional[str] = None):
        self._profile = profile
        self._default_region = default_region
        self._sessions: Dict[Tuple[str, str], boto3.session.Session] = {}

    def default(self) -> boto3.session.Session:
        key = ("", self._default_region or "")
        if key not in self._sessions:
            self._sessions[key] = boto3.session.Session(
                profile_name=self._profile,
                region_name=self._default_region,
            )
        return self._sessions[key]

    def from_role(self, role_arn: str, region: str) -> boto3.session.Session:
        """Session with credentials from assuming ``role_arn``."""
        if not role_arn:
            return self.from_region(region)

        key = (role_arn, region)
        if key in self._sessions:
            return self._sessions[key]

        try:
            creds = self.default().client("sts").assume_role(
                RoleArn=role_arn,
                RoleSessionName="deployment-engine",
            )["Credentials"]
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"assume role {role_arn}"]) from e

        logger.info(f"[session] assumed {role_arn} in {region}")
        session = boto3.session.Session(
            aws_access_key_id=creds["AccessKeyId"],
            aws_secret_access_key=creds["SecretAccessKey"],
            aws_session_token=creds["SessionToken"],
            region_name=region,
        )
        self._sessions[key] = session
        return session

    def from_region(self, region: str) -> boto3.session.Session:
        key = ("", region)
        if key not in self._sessions:
            self._sessions[key] = boto3.session.Session(
                profile_name=self._profile,
                region_name=region,
            )
        return self._sessions[key]
