"""
Selector descriptors - one strategy + value pair for locating an element.

The asset generator describes every element with a list of candidate
selectors in the Playwright vocabulary:

    {"type": "getByRole", "value": "button", "options": {"name": "Login"}}
    {"type": "locator", "value": "#submit"}

A descriptor has a canonical string key used for set membership, map keys
and the knowledge base on disk:

    getByRole:button{"name":"Login"}
    locator:#submit
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SelectorKind(Enum):
    """Locator strategies understood by the resolver."""

    ROLE = "getByRole"
    LABEL = "getByLabel"
    PLACEHOLDER = "getByPlaceholder"
    TEXT = "getByText"
    QUERY = "locator"  # raw CSS / XPath / Playwright selector

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() in ("css", "xpath", "query"):
            return cls.QUERY
        return None


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _options_json(options: Optional[Dict[str, Any]]) -> str:
    if not options:
        return ""
    return json.dumps(options, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class SelectorDescriptor:
    """A single candidate locator for a logical element."""

    kind: SelectorKind
    value: str
    options: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)

    @property
    def key(self) -> str:
        """Canonical string form: ``{kind}:{value}{json(options)}``."""
        return f"{self.kind.value}:{self.value}{_options_json(self.options)}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, SelectorDescriptor):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.key

    @classmethod
    def from_key(cls, key: str) -> "SelectorDescriptor":
        """
        Rebuild a descriptor from its canonical key.

        Keys written by older versions, or by hand, never raise: an unknown
        strategy prefix is kept as part of a raw query.
        """
        kind_str, sep, rest = key.partition(":")
        try:
            kind = SelectorKind(kind_str) if sep else SelectorKind.QUERY
        except ValueError:
            return cls(SelectorKind.QUERY, key)
        if not sep:
            return cls(kind, key)

        value, options = rest, None
        if rest.endswith("}"):
            decoder = json.JSONDecoder()
            start = rest.find("{")
            while start != -1:
                try:
                    parsed, end = decoder.raw_decode(rest, start)
                except ValueError:
                    parsed, end = None, -1
                if isinstance(parsed, dict) and end == len(rest):
                    value, options = rest[:start], parsed
                    break
                start = rest.find("{", start + 1)
        return cls(kind, value, options or None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorDescriptor":
        """Create a descriptor from the generator's ``{type, value, options}`` form."""
        from .assets import AssetValidationError

        if not isinstance(data, dict):
            raise AssetValidationError(f"selector must be an object, got {type(data).__name__}")
        kind_str = data.get("type")
        try:
            kind = SelectorKind(kind_str)
        except ValueError:
            raise AssetValidationError(f"unknown selector type: {kind_str!r}")
        value = data.get("value")
        if not isinstance(value, str) or not value:
            raise AssetValidationError(f"selector value must be a non-empty string, got {value!r}")
        options = data.get("options")
        if options is not None and not isinstance(options, dict):
            raise AssetValidationError(f"selector options must be an object, got {options!r}")
        return cls(kind, value, options or None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind.value, "value": self.value}
        if self.options:
            data["options"] = dict(self.options)
        return data

    def locator_kwargs(self) -> Dict[str, Any]:
        """Options as Playwright keyword arguments (``includeHidden`` -> ``include_hidden``)."""
        return {_snake_case(k): v for k, v in (self.options or {}).items()}

    def to_locator(self, page):
        """Build the Playwright locator for this descriptor on a page (sync or async)."""
        kwargs = self.locator_kwargs()
        if self.kind == SelectorKind.ROLE:
            return page.get_by_role(self.value, **kwargs)
        if self.kind == SelectorKind.LABEL:
            return page.get_by_label(self.value, **kwargs)
        if self.kind == SelectorKind.PLACEHOLDER:
            return page.get_by_placeholder(self.value, **kwargs)
        if self.kind == SelectorKind.TEXT:
            return page.get_by_text(self.value, **kwargs)
        return page.locator(self.value)
