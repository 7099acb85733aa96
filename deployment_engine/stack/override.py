# deployment_engine/stack/override.py
"""
Template overrides.

Every stack configuration handed to a deployer is wrapped by
``TemplateOverriddenStack``. Without user overrides the wrapper holds a
``NoopOverrider`` and returns the template unchanged.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import yaml

from deployment_engine.core.errors import DeployConfigurationError
from deployment_engine.core.models import StackParameter
from deployment_engine.stack.base import StackConfiguration
from deployment_engine.stack.renderer import JSONTemplateRenderer, TemplateRenderer

logger = logging.getLogger(__name__)


class Overrider(ABC):

    @abstractmethod
    def override(self, body: str) -> str:
        raise NotImplementedError


class NoopOverrider(Overrider):
    def override(self, body: str) -> str:
        return body


# ============================================
# YAML PATCH
# ============================================

class _StopFollowing(Exception):
    pass


class PatchError(Exception):
    pass


def _split_pointer(pointer: str) -> List[str]:
    parts = pointer.split("/")
    return [p.replace("~0", "~").replace("~1", "/") for p in parts]


def _index(token: str, seq: list) -> int:
    try:
        idx = int(token)
    except ValueError:
        raise PatchError(f'expected index in sequence, got "{token}"')
    if idx < 0 or idx > len(seq) - 1:
        raise PatchError(f"invalid index {idx} for sequence of length {len(seq)}")
    return idx


def _follow(node: Any, pointer: List[str], visit: Callable[[Any, List[str]], None]) -> None:
    try:
        visit(node, pointer)
    except _StopFollowing:
        return
    if not pointer:
        return

    head, rest = pointer[0], pointer[1:]
    if isinstance(node, dict):
        if head not in node:
            raise PatchError(f'key "{head}" not found in map')
        _follow(node[head], rest, visit)
    elif isinstance(node, list):
        _follow(node[_index(head, node)], rest, visit)
    else:
        raise PatchError(f"invalid node type {type(node).__name__} for path")


class YAMLPatch:
    """One add/remove/replace operation addressed by a JSON pointer."""

    def __init__(self, op: str, path: str, value: Any = None):
        self.op = op
        self.path = path
        self.value = value

    def apply(self, document: Dict[str, Any]) -> Dict[str, Any]:
        # The leading "" token addresses the document root
        pointer = _split_pointer(self.path)[1:]
        if self.op == "replace" and not pointer:
            return self.value

        holder = {"": document}
        if self.op == "add":
            _follow(holder, [""] + pointer, self._add)
        elif self.op == "remove":
            _follow(holder, [""] + pointer, self._remove)
        elif self.op == "replace":
            _follow(holder, [""] + pointer, self._replace)
        else:
            raise PatchError(f'unsupported operation "{self.op}"')
        return holder[""]

    def _add(self, node: Any, pointer: List[str]) -> None:
        if len(pointer) != 1:
            return
        key = pointer[0]
        if isinstance(node, dict):
            node[key] = self.value
            raise _StopFollowing()
        if isinstance(node, list):
            if key in ("-", ""):
                node.append(self.value)
            else:
                node.insert(_index(key, node), self.value)
            raise _StopFollowing()

    def _remove(self, node: Any, pointer: List[str]) -> None:
        if len(pointer) != 1:
            return
        key = pointer[0]
        if isinstance(node, dict) and key in node:
            del node[key]
            raise _StopFollowing()
        if isinstance(node, list):
            del node[_index(key, node)]
            raise _StopFollowing()

    def _replace(self, node: Any, pointer: List[str]) -> None:
        if len(pointer) != 1:
            return
        key = pointer[0]
        if isinstance(node, dict):
            if key not in node:
                raise PatchError(f'key "{key}" not found in map')
            node[key] = self.value
            raise _StopFollowing()
        if isinstance(node, list):
            node[_index(key, node)] = self.value
            raise _StopFollowing()


class PatchOverrider(Overrider):
    """Applies YAML patch documents found in an overrides directory."""

    def __init__(
        self,
        root: str,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self._root = root
        self._renderer = renderer or JSONTemplateRenderer()

    def _load_patches(self) -> List[YAMLPatch]:
        try:
            names = sorted(os.listdir(self._root))
        except OSError as e:
            raise DeployConfigurationError(str(e), [f'read directory "{self._root}"']) from e

        patches: List[YAMLPatch] = []
        for name in names:
            path = os.path.join(self._root, name)
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
            try:
                docs = yaml.safe_load(content) or []
                if not isinstance(docs, list):
                    raise TypeError("expected a list of patches")
                patches.extend(YAMLPatch(d["op"], d["path"], d.get("value")) for d in docs)
            except (yaml.YAMLError, TypeError, KeyError) as e:
                raise DeployConfigurationError(
                    f'file at "{path}" does not conform to the YAML patch document schema: {e}'
                ) from e
        return patches

    def override(self, body: str) -> str:
        patches = self._load_patches()
        try:
            document = yaml.safe_load(body)
        except yaml.YAMLError as e:
            raise DeployConfigurationError(f"invalid template: {e}") from e

        for patch in patches:
            try:
                document = patch.apply(document)
            except PatchError as e:
                raise DeployConfigurationError(
                    f'unable to apply "{patch.op}" patch at "{patch.path}": {e}'
                ) from e

        logger.info(f"[override] applied {len(patches)} patch(es) from {self._root}")
        return self._renderer.render(document)


# ============================================
# WRAPPER
# ============================================

class TemplateOverriddenStack(StackConfiguration):
    """Delegates to the wrapped configuration, overriding the template body."""

    def __init__(self, conf: StackConfiguration, overrider: Overrider):
        self._conf = conf
        self._overrider = overrider

    @property
    def stack_name(self) -> str:
        return self._conf.stack_name

    @property
    def wrapped(self) -> StackConfiguration:
        return self._conf

    def template(self) -> str:
        return self._overrider.override(self._conf.template())

    def parameters(self) -> List[StackParameter]:
        return self._conf.parameters()

    def tags(self) -> Dict[str, str]:
        return self._conf.tags()

    def serialized_parameters(self) -> str:
        return self._conf.serialized_parameters()


def wrap_with_template_overrider(
    conf: StackConfiguration,
    overrider: Optional[Overrider] = None,
) -> TemplateOverriddenStack:
    return TemplateOverriddenStack(conf, overrider or NoopOverrider())
