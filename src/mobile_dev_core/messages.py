"""Message catalog for requirement titles and results.

Keys are dotted paths into ``resources/messages.yaml`` (``android.java.title``).
Templates use positional ``%s`` placeholders.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Optional

import yaml

from mobile_dev_core.common.utils import format_message


class MessageNotFoundError(KeyError):
    pass


class Messages:
    def __init__(self, catalog: Dict[str, Any]) -> None:
        self._catalog = catalog

    @classmethod
    def from_yaml(cls, text: str) -> "Messages":
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("message catalog must be a mapping")
        return cls(data)

    def _lookup(self, key: str) -> Any:
        node: Any = self._catalog
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def has(self, key: str) -> bool:
        return isinstance(self._lookup(key), str)

    def get(self, key: str, *params: object) -> str:
        template = self._lookup(key)
        if not isinstance(template, str):
            raise MessageNotFoundError(key)
        return format_message(template, *params)

    def get_optional(self, key: str, *params: object) -> Optional[str]:
        return self.get(key, *params) if self.has(key) else None


@lru_cache(maxsize=1)
def default_messages() -> Messages:
    text = resources.files("mobile_dev_core.resources").joinpath("messages.yaml").read_text(
        encoding="utf-8"
    )
    return Messages.from_yaml(text)
