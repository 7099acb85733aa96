# deployment_engine/artifacts/addons.py
"""
Addons: extra CloudFormation templates stored next to a workload.

Every ``*.yml``/``*.yaml`` file under ``<workspace>/<workload>/addons/`` is
merged into one nested-stack template. ``addons.parameters.yml`` supplies
values for the nested stack's parameters.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.stack.renderer import JSONTemplateRenderer, TemplateRenderer

logger = logging.getLogger(__name__)

PARAMETERS_FILE_NAMES = ("addons.parameters.yml", "addons.parameters.yaml")
MERGEABLE_SECTIONS = ("Metadata", "Parameters", "Mappings", "Conditions", "Transform", "Resources", "Outputs")

# Parameters every addons stack receives from its parent
RESERVED_PARAMETERS = ("AppName", "EnvName", "WorkloadName")


class CloudFormationLoader(yaml.SafeLoader):
    """SafeLoader that understands short-form intrinsic function tags."""


def _intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Dict[str, Any]:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix == "Ref":
        return {"Ref": value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    if tag_suffix == "Condition":
        return {"Condition": value}
    return {f"Fn::{tag_suffix}": value}


CloudFormationLoader.add_multi_constructor("!", _intrinsic)


def load_template(raw: str) -> Dict[str, Any]:
    doc = yaml.load(raw, Loader=CloudFormationLoader)
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise DeployConfigurationError("addons template must be a mapping")
    return doc


class AddonsPackage:
    def __init__(self, template: str, parameters: Dict[str, str]):
        self.template = template
        self.parameters = parameters


class AddonsPackager:
    """Merges a workload's addons directory into one template."""

    def __init__(self, workspace: str, renderer: Optional[TemplateRenderer] = None):
        self._workspace = workspace
        self._renderer = renderer or JSONTemplateRenderer()

    def addons_dir(self, workload: str) -> str:
        return os.path.join(self._workspace, workload, "addons")

    def _template_files(self, workload: str) -> List[str]:
        root = self.addons_dir(workload)
        if not os.path.isdir(root):
            return []
        return [
            os.path.join(root, name)
            for name in sorted(os.listdir(root))
            if name.endswith((".yml", ".yaml")) and name not in PARAMETERS_FILE_NAMES
        ]

    def _parameters(self, workload: str) -> Dict[str, str]:
        for name in PARAMETERS_FILE_NAMES:
            path = os.path.join(self.addons_dir(workload), name)
            if not os.path.isfile(path):
                continue
            with open(path, "r", encoding="utf-8") as f:
                doc = load_template(f.read())
            params = doc.get("Parameters") or {}
            for key in params:
                if key in RESERVED_PARAMETERS:
                    raise DeployConfigurationError(
                        f"reserved parameter {key} cannot be declared in {name}"
                    )
            return {k: v if isinstance(v, (str, dict)) else str(v) for k, v in params.items()}
        return {}

    def package(self, workload: str) -> Optional[AddonsPackage]:
        """Merged addons template, or None when the workload has no addons."""
        files = self._template_files(workload)
        if not files:
            return None

        merged: Dict[str, Any] = {}
        for path in files:
            with open(path, "r", encoding="utf-8") as f:
                try:
                    doc = load_template(f.read())
                except yaml.YAMLError as e:
                    raise DeployConfigurationError(
                        str(e), [f"parse addons template {os.path.basename(path)}"]
                    ) from e
            self._merge(merged, doc, os.path.basename(path))

        merged.setdefault("AWSTemplateFormatVersion", "2010-09-09")
        logger.info(f"[addons] merged {len(files)} template(s) for {workload}")
        return AddonsPackage(self._renderer.render(merged), self._parameters(workload))

    @staticmethod
    def _merge(merged: Dict[str, Any], doc: Dict[str, Any], source: str) -> None:
        for section in MERGEABLE_SECTIONS:
            incoming = doc.get(section)
            if not incoming:
                continue
            if not isinstance(incoming, dict):
                if section in merged and merged[section] != incoming:
                    raise DeployConfigurationError(
                        f"{section} in {source} conflicts with a previous addons template"
                    )
                merged[section] = incoming
                continue
            target = merged.setdefault(section, {})
            for key, value in incoming.items():
                if key in target and target[key] != value:
                    raise DeployConfigurationError(
                        f'{section} "{key}" in {source} is defined differently in another addons template'
                    )
                target[key] = value
