# deployment_engine/artifacts/images.py
"""Container image build and push on the Docker SDK."""

import base64
import logging
from typing import Dict, List, Mapping, Optional, Sequence

import docker

from deployment_engine.core.clients import ImageBuilderPusher
from deployment_engine.core.errors import DeployDependencyError
from deployment_engine.core.models import ContainerImageIdentifier
from deployment_engine.manifest.models import DockerBuildArgs

logger = logging.getLogger(__name__)


def image_tags(container: str, main_container: str, custom_tag: str, commit: str) -> List[str]:
    """Tags pushed for one container image."""
    if container == main_container:
        tags = ["latest"]
        tag = custom_tag or commit
        if tag:
            tags.append(tag)
        return tags

    tags = [f"{container}-latest"]
    if commit:
        tags.append(f"{container}-{commit}")
    return tags


class DockerImageBuilderPusher(ImageBuilderPusher):
    """
    Builds with the local Docker daemon and pushes to a registry.

    ``auth_token`` is an ECR-style base64 "user:password" token; when given,
    the client logs in to the repository's registry before pushing.
    """

    def __init__(self, client=None, auth_token: Optional[str] = None):
        self._client = client
        self._auth_token = auth_token

    def _docker(self):
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _auth_config(self) -> Optional[Dict[str, str]]:
        if not self._auth_token:
            return None
        username, _, password = base64.b64decode(self._auth_token).decode("utf-8").partition(":")
        return {"username": username, "password": password}

    def build_and_push(
        self,
        repo_url: str,
        dockerfile: str,
        context: str,
        tags: Sequence[str],
        build_args: Optional[Mapping[str, str]] = None,
        target: Optional[str] = None,
        cache_from: Sequence[str] = (),
        platform: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        if not tags:
            raise DeployDependencyError(f"no tags to push for {repo_url}")

        client = self._docker()
        try:
            logger.info(f"[images] building {repo_url} from {dockerfile}")
            image, _ = client.images.build(
                path=context,
                dockerfile=dockerfile,
                tag=f"{repo_url}:{tags[0]}",
                buildargs=dict(build_args or {}),
                target=target,
                cache_from=list(cache_from),
                platform=platform,
                labels=dict(labels or {}),
                rm=True,
            )
            for tag in tags[1:]:
                image.tag(repo_url, tag=tag)

            digest = ""
            for tag in tags:
                logger.info(f"[images] pushing {repo_url}:{tag}")
                for line in client.images.push(
                    repo_url, tag=tag, stream=True, decode=True, auth_config=self._auth_config()
                ):
                    if "errorDetail" in line:
                        raise DeployDependencyError(
                            line["errorDetail"].get("message", "unknown error"),
                            [f"push {repo_url}:{tag}"],
                        )
                    aux = line.get("aux") or {}
                    if aux.get("Digest"):
                        digest = aux["Digest"]
        except docker.errors.BuildError as e:
            raise DeployDependencyError(str(e), [f"build {dockerfile}"]) from e
        except docker.errors.APIError as e:
            raise DeployDependencyError(str(e), [f"build and push {repo_url}"]) from e

        if not digest:
            raise DeployDependencyError(f"push of {repo_url} returned no digest")
        logger.info(f"[images] ✅ pushed {repo_url}@{digest}")
        return digest


def build_and_push_images(
    builds: Mapping[str, DockerBuildArgs],
    main_container: str,
    repo_url: str,
    builder: ImageBuilderPusher,
    custom_tag: str = "",
    commit: str = "",
    platform: Optional[str] = None,
    labels: Optional[Mapping[str, str]] = None,
) -> Dict[str, ContainerImageIdentifier]:
    """Build and push every locally built container of one workload."""
    if builds and not repo_url:
        raise DeployDependencyError(f"no image repository for {main_container}")

    out: Dict[str, ContainerImageIdentifier] = {}
    for container, args in builds.items():
        digest = builder.build_and_push(
            repo_url=repo_url,
            dockerfile=args.dockerfile or "Dockerfile",
            context=args.context or ".",
            tags=image_tags(container, main_container, custom_tag, commit),
            build_args=args.args,
            target=args.target,
            cache_from=args.cache_from,
            platform=platform,
            labels=labels,
        )
        out[container] = ContainerImageIdentifier(
            digest=digest,
            custom_tag=custom_tag if container == main_container else "",
            git_short_commit_tag=commit,
        )
    return out
