# deployment_engine/core/resources.py
"""Per-deployer memoization of the app's regional resources."""

import logging
from typing import Optional

from deployment_engine.core.clients import RegionalResourcesGetter
from deployment_engine.core.errors import DeployDependencyError, RegionalResourcesError
from deployment_engine.core.models import RegionalResources

logger = logging.getLogger(__name__)


class RegionalResourceCache:
    """
    Looks up regional resources at most once per successful call.

    Not shared between deployers and not thread-safe; the upload phases that
    need the bucket read it after the first lookup has completed.
    """

    def __init__(self, getter: RegionalResourcesGetter, app: str, region: str):
        self._getter = getter
        self._app = app
        self._region = region
        self._cached: Optional[RegionalResources] = None

    def get(self) -> RegionalResources:
        if self._cached is not None:
            return self._cached

        try:
            resources = self._getter.get_app_resources_by_region(self._app, self._region)
        except DeployDependencyError as e:
            raise e.wrap(f"get application {self._app} resources from region {self._region}")
        except Exception as e:
            raise DeployDependencyError(
                str(e),
                [f"get application {self._app} resources from region {self._region}"],
            ) from e

        if not resources.s3_bucket:
            raise RegionalResourcesError(
                f"cannot find the S3 artifact bucket in region {self._region}"
            )

        logger.debug(f"[resources] cached bucket {resources.s3_bucket} for {self._app}/{self._region}")
        self._cached = resources
        return resources
