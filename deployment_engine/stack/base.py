# deployment_engine/stack/base.py
"""Stack configuration contract."""

import json
from abc import ABC, abstractmethod
from typing import Dict, List

from deployment_engine.core.models import StackParameter


class StackConfiguration(ABC):
    """
    Renders one stack: template body, parameter values and tags.

    Implementations must be deterministic: identical inputs produce
    byte-identical output.
    """

    @property
    @abstractmethod
    def stack_name(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def template(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def parameters(self) -> List[StackParameter]:
        raise NotImplementedError

    @abstractmethod
    def tags(self) -> Dict[str, str]:
        raise NotImplementedError

    def serialized_parameters(self) -> str:
        """Parameters and tags as a canonical JSON configuration document."""
        doc = {
            "Parameters": {p.key: p.value for p in self.parameters()},
            "Tags": dict(self.tags()),
        }
        return json.dumps(doc, sort_keys=True, indent=2)
