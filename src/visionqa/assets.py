"""
Typed model of the test assets produced by the AI generator.

The generator returns a JSON document shaped like:

    {
      "pageObject": {
        "className": "LoginPage",
        "locators": [
          {
            "name": "loginButton",
            "elementType": "button",
            "actions": ["click"],
            "selectors": [{"type": "getByRole", "value": "button", "options": {"name": "Login"}}],
            "waitBefore": "enabled",
            "validateAfter": true
          }
        ]
      },
      "additionalPageObjects": [...],
      "testSteps": [
        {"action": "clickLoginButton", "params": [], "page": "LoginPage"}
      ]
    }

Documents are validated at the boundary: anything malformed raises
AssetValidationError with the path of the offending field instead of being
partially consumed.
"""

import copy
import json
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .selectors import SelectorDescriptor


class AssetValidationError(ValueError):
    """Raised when a generated asset document does not match the schema."""


class ElementKind(Enum):
    INPUT = "input"
    BUTTON = "button"
    TEXT = "text"
    ALERT = "alert"
    SELECT = "select"
    CHECKBOX = "checkbox"
    LINK = "link"


class ElementAction(Enum):
    FILL = "fill"
    CLICK = "click"
    CHECK = "check"
    SELECT = "select"
    CLEAR = "clear"
    GET_VALUE = "getValue"


# Actions that make sense for each element kind
KIND_ACTIONS = {
    ElementKind.INPUT: {ElementAction.FILL, ElementAction.CLEAR, ElementAction.GET_VALUE, ElementAction.CLICK},
    ElementKind.BUTTON: {ElementAction.CLICK},
    ElementKind.TEXT: set(),
    ElementKind.ALERT: set(),
    ElementKind.SELECT: {ElementAction.SELECT, ElementAction.GET_VALUE},
    ElementKind.CHECKBOX: {ElementAction.CHECK, ElementAction.CLICK},
    ElementKind.LINK: {ElementAction.CLICK},
}


@dataclass
class LocatorMetadata:
    """Knowledge-base information attached to an element by the enhancement step."""

    confidence: float
    last_success: Optional[str] = None
    enhanced: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence": self.confidence,
            "lastSuccess": self.last_success,
            "enhanced": self.enhanced,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocatorMetadata":
        return cls(
            confidence=float(data.get("confidence", 100.0)),
            last_success=data.get("lastSuccess"),
            enhanced=bool(data.get("enhanced", True)),
        )


@dataclass
class LocatorDefinition:
    """One logical UI element and its ordered selector candidates."""

    name: str
    selectors: List[SelectorDescriptor]
    element_type: Optional[ElementKind] = None
    actions: List[ElementAction] = field(default_factory=list)
    wait_before: Optional[str] = None
    validate_after: bool = False
    metadata: Optional[LocatorMetadata] = None

    @property
    def description(self) -> str:
        """Human readable name: ``loginButton`` -> ``login Button``."""
        return split_camel_case(self.name)

    @classmethod
    def from_dict(cls, data: Any, path: str = "locator") -> "LocatorDefinition":
        if not isinstance(data, dict):
            raise AssetValidationError(f"{path}: expected an object")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise AssetValidationError(f"{path}.name: expected a non-empty string")

        raw_selectors = data.get("selectors")
        if not isinstance(raw_selectors, list):
            raise AssetValidationError(f"{path}.selectors: expected a list")
        selectors = []
        for i, raw in enumerate(raw_selectors):
            try:
                selectors.append(SelectorDescriptor.from_dict(raw))
            except AssetValidationError as e:
                raise AssetValidationError(f"{path}.selectors[{i}]: {e}")

        element_type = None
        if data.get("elementType") is not None:
            try:
                element_type = ElementKind(data["elementType"])
            except ValueError:
                raise AssetValidationError(f"{path}.elementType: unknown kind {data['elementType']!r}")

        raw_actions = data.get("actions", [])
        if not isinstance(raw_actions, list):
            raise AssetValidationError(f"{path}.actions: expected a list")
        actions = []
        for action in raw_actions:
            try:
                actions.append(ElementAction(action))
            except ValueError:
                raise AssetValidationError(f"{path}.actions: unknown action {action!r}")

        metadata = None
        if isinstance(data.get("metadata"), dict):
            metadata = LocatorMetadata.from_dict(data["metadata"])

        return cls(
            name=name,
            selectors=selectors,
            element_type=element_type,
            actions=actions,
            wait_before=data.get("waitBefore"),
            validate_after=bool(data.get("validateAfter", False)),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.element_type:
            data["elementType"] = self.element_type.value
        data["actions"] = [a.value for a in self.actions]
        data["selectors"] = [s.to_dict() for s in self.selectors]
        if self.wait_before:
            data["waitBefore"] = self.wait_before
        if self.validate_after:
            data["validateAfter"] = True
        if self.metadata:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass
class PageObjectDefinition:
    """A page class and the elements it exposes."""

    class_name: str
    locators: List[LocatorDefinition] = field(default_factory=list)

    def find(self, name: str) -> Optional[LocatorDefinition]:
        for loc in self.locators:
            if loc.name == name:
                return loc
        return None

    @classmethod
    def from_dict(cls, data: Any, path: str = "pageObject") -> "PageObjectDefinition":
        if not isinstance(data, dict):
            raise AssetValidationError(f"{path}: expected an object")
        class_name = data.get("className")
        if not isinstance(class_name, str) or not class_name.isidentifier():
            raise AssetValidationError(f"{path}.className: expected a class name, got {class_name!r}")
        raw_locators = data.get("locators")
        if not isinstance(raw_locators, list):
            raise AssetValidationError(f"{path}.locators: expected a list")
        locators = [
            LocatorDefinition.from_dict(raw, f"{path}.locators[{i}]")
            for i, raw in enumerate(raw_locators)
        ]
        return cls(class_name=class_name, locators=locators)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "className": self.class_name,
            "locators": [loc.to_dict() for loc in self.locators],
        }


@dataclass
class TestStep:
    """A single step of the generated test flow."""

    __test__ = False  # not a pytest test class

    action: str
    params: List[Any] = field(default_factory=list)
    page: Optional[str] = None
    element: Optional[str] = None
    wait_for: Optional[Dict[str, Any]] = None
    assertion: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "testSteps[]") -> "TestStep":
        if not isinstance(data, dict):
            raise AssetValidationError(f"{path}: expected an object")
        action = data.get("action")
        if not isinstance(action, str) or not action:
            raise AssetValidationError(f"{path}.action: expected a non-empty string")
        params = data.get("params", [])
        if not isinstance(params, list):
            raise AssetValidationError(f"{path}.params: expected a list")
        return cls(
            action=action,
            params=params,
            page=data.get("page"),
            element=data.get("element"),
            wait_for=data.get("waitFor"),
            assertion=data.get("assert"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action, "params": list(self.params)}
        if self.page:
            data["page"] = self.page
        if self.element:
            data["element"] = self.element
        if self.wait_for:
            data["waitFor"] = self.wait_for
        if self.assertion:
            data["assert"] = self.assertion
        return data


@dataclass
class TestAssets:
    """Complete generator output: page objects plus the ordered test steps."""

    __test__ = False

    page_object: PageObjectDefinition
    test_steps: List[TestStep] = field(default_factory=list)
    additional_page_objects: List[PageObjectDefinition] = field(default_factory=list)

    @property
    def all_page_objects(self) -> List[PageObjectDefinition]:
        return [self.page_object] + list(self.additional_page_objects)

    def all_locators(self) -> List[LocatorDefinition]:
        return [loc for page in self.all_page_objects for loc in page.locators]

    def find_locator(self, name: str) -> Optional[LocatorDefinition]:
        for page in self.all_page_objects:
            loc = page.find(name)
            if loc:
                return loc
        return None

    def known_elements(self) -> Dict[str, List[SelectorDescriptor]]:
        """Element name -> ordered candidate list, first definition wins."""
        known: Dict[str, List[SelectorDescriptor]] = {}
        for loc in self.all_locators():
            known.setdefault(loc.name, list(loc.selectors))
        return known

    def copy(self) -> "TestAssets":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Any) -> "TestAssets":
        if not isinstance(data, dict):
            raise AssetValidationError("document: expected a JSON object")
        if "pageObject" not in data:
            raise AssetValidationError("pageObject: missing")
        page_object = PageObjectDefinition.from_dict(data["pageObject"])

        raw_additional = data.get("additionalPageObjects") or []
        if not isinstance(raw_additional, list):
            raise AssetValidationError("additionalPageObjects: expected a list")
        additional = [
            PageObjectDefinition.from_dict(raw, f"additionalPageObjects[{i}]")
            for i, raw in enumerate(raw_additional)
        ]

        raw_steps = data.get("testSteps")
        if not isinstance(raw_steps, list):
            raise AssetValidationError("testSteps: expected a list")
        steps = [TestStep.from_dict(raw, f"testSteps[{i}]") for i, raw in enumerate(raw_steps)]

        return cls(page_object=page_object, test_steps=steps, additional_page_objects=additional)

    @classmethod
    def from_json(cls, text: str) -> "TestAssets":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise AssetValidationError(f"document is not valid JSON: {e}")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path) -> "TestAssets":
        with open(path, encoding="utf-8") as f:
            return cls.from_json(f.read())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"pageObject": self.page_object.to_dict()}
        if self.additional_page_objects:
            data["additionalPageObjects"] = [p.to_dict() for p in self.additional_page_objects]
        data["testSteps"] = [s.to_dict() for s in self.test_steps]
        return data

    def save(self, path) -> Path:
        """Write the document atomically (temp file + rename)."""
        return write_json_atomic(path, self.to_dict())


def split_camel_case(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper() and out:
            out.append(" ")
        out.append(ch)
    return "".join(out).strip()


def write_json_atomic(path, payload: Any) -> Path:
    """Serialize ``payload`` next to ``path`` and rename it into place."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Optional[Path] = None
    try:
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
        temp_path = Path(temp_name)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except OSError:
        if temp_path and temp_path.exists():
            temp_path.unlink()
        raise
    return target
