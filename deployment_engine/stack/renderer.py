"""Template rendering capability."""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict


class TemplateRenderer(ABC):

    @abstractmethod
    def render(self, document: Dict[str, Any]) -> str:
        """Serialize a template document into its text form."""
        raise NotImplementedError


class JSONTemplateRenderer(TemplateRenderer):
    """Canonical JSON: sorted keys, fixed indentation."""

    def __init__(self, indent: int = 2):
        self._indent = indent

    def render(self, document: Dict[str, Any]) -> str:
        return json.dumps(document, sort_keys=True, indent=self._indent)
