# deployment_engine/artifacts/pipeline.py
"""Runs the artifact upload phases concurrently and combines their results."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from deployment_engine.core.errors import ArtifactUploadError, DeployError
from deployment_engine.core.models import UploadArtifactsOutput

logger = logging.getLogger(__name__)

PHASE_IMAGES = "images"
PHASE_CUSTOM_RESOURCES = "custom_resources"
PHASE_FILES = "files"

Phase = Callable[[], UploadArtifactsOutput]


class ArtifactUploadPipeline:
    """
    Independent upload phases, combined once all of them succeed.

    The first phase to fail (in completion order) is raised as an
    ``ArtifactUploadError`` naming that phase, with the kind of the
    underlying error. Phases not yet started are cancelled and no partial
    output is returned.
    """

    def __init__(self, max_workers: int = 3):
        self._max_workers = max_workers
        self._phases: List[Tuple[str, Phase]] = []

    def add(self, name: str, phase: Optional[Phase]) -> "ArtifactUploadPipeline":
        if phase is not None:
            self._phases.append((name, phase))
        return self

    @property
    def phase_names(self) -> List[str]:
        return [name for name, _ in self._phases]

    def run(self) -> UploadArtifactsOutput:
        out = UploadArtifactsOutput()
        if not self._phases:
            return out

        failure: Optional[Tuple[str, Exception]] = None
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            future_map = {executor.submit(phase): name for name, phase in self._phases}
            results: Dict[str, UploadArtifactsOutput] = {}

            for future in as_completed(future_map):
                name = future_map[future]
                try:
                    results[name] = future.result()
                    logger.debug(f"[artifacts] phase {name} done")
                except Exception as e:
                    logger.error(f"[artifacts] phase {name} failed: {e}")
                    failure = (name, e)
                    for pending in future_map:
                        pending.cancel()
                    break

        if failure is not None:
            name, e = failure
            if isinstance(e, DeployError):
                raise ArtifactUploadError(name, str(e), e.kind) from e
            raise ArtifactUploadError(name, f"{type(e).__name__}: {e}") from e

        # Merge in declaration order so output is independent of timing
        for name, _ in self._phases:
            out.merge(results[name])
        return out
