# deployment_engine/infrastructure/aws/s3.py

import logging

from botocore.exceptions import BotoCoreError, ClientError

from deployment_engine.core import artifactpath
from deployment_engine.core.clients import Uploader
from deployment_engine.core.errors import DeployDependencyError

logger = logging.getLogger(__name__)


class S3Uploader(Uploader):
    """Puts objects into the artifact bucket."""

    def __init__(self, s3_client):
        self._s3 = s3_client

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        try:
            self._s3.put_object(Bucket=bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"put object {key} to bucket {bucket}"]) from e
        logger.debug(f"[s3] uploaded s3://{bucket}/{key}")
        return artifactpath.object_url(bucket, self._s3.meta.region_name, key)
