# deployment_engine/stack/factory.py
"""Selects and builds the stack configuration for a manifest variant."""

from typing import Dict, List, Optional

from deployment_engine.core.errors import ManifestTypeError
from deployment_engine.core.models import Application, Environment, RuntimeConfig, StackParameter
from deployment_engine.manifest.models import (
    BackendServiceManifest,
    EnvironmentManifest,
    ScheduledJobManifest,
    WorkerServiceManifest,
    WorkloadType,
)
from deployment_engine.stack.env import EnvStackConfig
from deployment_engine.stack.override import (
    Overrider,
    TemplateOverriddenStack,
    wrap_with_template_overrider,
)
from deployment_engine.stack.renderer import TemplateRenderer
from deployment_engine.stack.workload import (
    BackendServiceStackConfig,
    ScheduledJobStackConfig,
    WorkerServiceStackConfig,
)

_WORKLOAD_VARIANTS = {
    WorkloadType.BACKEND_SERVICE: (BackendServiceManifest, BackendServiceStackConfig),
    WorkloadType.WORKER_SERVICE: (WorkerServiceManifest, WorkerServiceStackConfig),
    WorkloadType.SCHEDULED_JOB: (ScheduledJobManifest, ScheduledJobStackConfig),
}


def _type_name(manifest) -> str:
    wt = getattr(manifest, "workload_type", None)
    return wt.value if wt is not None else type(manifest).__name__


class StackConfigurationFactory:
    """Every returned configuration is wrapped with a template overrider."""

    def __init__(
        self,
        overrider: Optional[Overrider] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self._overrider = overrider
        self._renderer = renderer

    def for_workload(
        self,
        workload_type: WorkloadType,
        app: Application,
        env: Environment,
        manifest,
        runtime: RuntimeConfig,
    ) -> TemplateOverriddenStack:
        if workload_type not in _WORKLOAD_VARIANTS:
            raise ManifestTypeError("a workload", workload_type.value)

        manifest_cls, conf_cls = _WORKLOAD_VARIANTS[workload_type]
        if not isinstance(manifest, manifest_cls):
            raise ManifestTypeError(workload_type.value, _type_name(manifest))

        conf = conf_cls(app, env, manifest, runtime, renderer=self._renderer)
        return wrap_with_template_overrider(conf, self._overrider)

    def for_environment(
        self,
        app: Application,
        env: Environment,
        manifest,
        previous_parameters: List[StackParameter],
        force_update_id: str,
        root_user_arn: str = "",
        permissions_boundary: str = "",
        custom_resource_urls: Optional[Dict[str, str]] = None,
    ) -> TemplateOverriddenStack:
        if not isinstance(manifest, EnvironmentManifest):
            raise ManifestTypeError(WorkloadType.ENVIRONMENT.value, _type_name(manifest))

        conf = EnvStackConfig(
            app,
            env,
            manifest,
            previous_parameters=previous_parameters,
            force_update_id=force_update_id,
            root_user_arn=root_user_arn,
            permissions_boundary=permissions_boundary,
            custom_resource_urls=custom_resource_urls,
            renderer=self._renderer,
        )
        return wrap_with_template_overrider(conf, self._overrider)
