"""
Renders Python Page Objects and a pytest module from TestAssets.

Output layout for a test case named "Login with invalid credentials":

    generated/
    ├── login_page.py                              # class LoginPage(BasePage)
    └── test_login_with_invalid_credentials.py     # pytest flow

Method names follow the {action}{Element} convention used by the asset
generator (clickLoginButton, fillEmailInput, waitForErrorMessageVisible).
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from pprint import pformat
from typing import Dict, List, Optional, Tuple

from .assets import ElementAction, LocatorDefinition, PageObjectDefinition, TestAssets, TestStep
from .classifier import element_name_from_step
from .resolver import ResolverConfig

logger = logging.getLogger(__name__)

GENERATED_HEADER = '"""Generated by visionQA{source}. Do not edit by hand."""\n'

VERB_ACTIONS = {
    "fill": "fill",
    "click": "click",
    "check": "check",
    "uncheck": "uncheck",
    "select": "select",
    "clear": "clear",
    "getValue": "getValue",
}


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", (name or "").lower()).strip("_")
    return slug or "generated"


def module_name_for(class_name: str) -> str:
    """``LoginPage`` -> ``login_page``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", class_name).lower()


def instance_name_for(class_name: str) -> str:
    return module_name_for(class_name)


def _capitalize(name: str) -> str:
    return name[0].upper() + name[1:]


@dataclass
class GeneratedFiles:
    spec_path: Path
    page_modules: List[Path] = field(default_factory=list)

    def all(self) -> List[Path]:
        return list(self.page_modules) + [self.spec_path]


class CodeGenerator:
    """
    Writes runnable Page Objects and a pytest spec for one test case.

    Usage:
        generator = CodeGenerator("./generated")
        files = generator.generate(assets, "Login", base_url="https://example.com/login")
        PytestExecutor().run(files.spec_path)
    """

    def __init__(
        self,
        output_dir="./generated",
        resolver_config: Optional[ResolverConfig] = None,
        headless: bool = True,
        browser: str = "chromium",
        viewport: Tuple[int, int] = (1280, 720),
        artifacts_dir="test-results/failures",
        debug_dir="test-results/debug",
    ):
        self.output_dir = Path(output_dir)
        self.resolver_config = resolver_config or ResolverConfig()
        self.headless = headless
        self.browser = browser
        self.viewport = viewport
        self.artifacts_dir = str(artifacts_dir)
        self.debug_dir = str(debug_dir)

    def generate(self, assets: TestAssets, test_name: str, base_url: str) -> GeneratedFiles:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        page_modules = []
        for page_def in assets.all_page_objects:
            path = self.output_dir / f"{module_name_for(page_def.class_name)}.py"
            path.write_text(self.render_page(page_def, assets.test_steps), encoding="utf-8")
            page_modules.append(path)
            logger.info("Generated page object %s (%d elements)", path, len(page_def.locators))

        spec_path = self.output_dir / f"test_{slugify(test_name)}.py"
        spec_path.write_text(self.render_spec(assets, test_name, base_url), encoding="utf-8")
        logger.info("Generated spec %s (%d steps)", spec_path, len(assets.test_steps))
        return GeneratedFiles(spec_path=spec_path, page_modules=page_modules)

    # ------------------------------------------------------------------
    # Page objects

    def render_page(self, page_def: PageObjectDefinition, steps: List[TestStep]) -> str:
        known = {loc.name for loc in page_def.locators}
        lines = [
            GENERATED_HEADER.format(source=""),
            "from visionqa.pages import BasePage",
            "",
            "",
            f"class {page_def.class_name}(BasePage):",
            "    LOCATORS = {",
        ]
        for loc in page_def.locators:
            if loc.metadata:
                lines.append(f"        # knowledge base confidence {loc.metadata.confidence:.0f}%")
            selectors = [s.to_dict() for s in loc.selectors]
            lines.append(f"        {loc.name!r}: {pformat(selectors, width=10 ** 6, sort_dicts=False)},")
        lines.append("    }")

        for loc in page_def.locators:
            element_steps = [
                s for s in steps
                if s.element == loc.name or element_name_from_step(s.action, known) == loc.name
            ]
            for method in self._methods_for(loc, element_steps):
                lines.append("")
                lines.extend(method)
        return "\n".join(lines) + "\n"

    def _methods_for(self, loc: LocatorDefinition, steps: List[TestStep]) -> List[List[str]]:
        name = loc.name
        cap = _capitalize(name)
        methods: Dict[str, List[str]] = {}

        def add(method_name: str, signature: str, body: str):
            if method_name not in methods:
                methods[method_name] = [f"    def {method_name}({signature}):", f"        {body}"]

        add(f"waitFor{cap}Visible", "self, timeout=10000", f"self.wait_for_visible({name!r}, timeout)")
        if not loc.actions:
            add(f"get{cap}Text", "self", f"return self.get_text({name!r})")
            add(f"assert{cap}Text", "self, expected", f"self.assert_text({name!r}, expected)")
            add(f"is{cap}Visible", "self", f"return self.is_visible({name!r})")

        required = [a.value for a in loc.actions]
        for step in steps:
            action = step.action
            for verb in sorted(VERB_ACTIONS, key=len, reverse=True):
                if action.startswith(verb):
                    if VERB_ACTIONS[verb] not in required:
                        required.append(VERB_ACTIONS[verb])
                    break
            if action.startswith("assert") and action.endswith("Visible"):
                add(action, "self", f"self.wait_for_visible({name!r})")
            elif action.startswith("assert") and action.endswith("OneOf"):
                add(action, "self, expected_options", f"self.assert_one_of({name!r}, expected_options)")
            elif action.startswith("assert") and action.isidentifier():
                add(action, "self, expected", f"self.assert_text({name!r}, expected)")
            elif action.startswith("get") and action.endswith("Text"):
                add(action, "self", f"return self.get_text({name!r})")
            elif action.startswith("is") and action.endswith("Visible"):
                add(action, "self", f"return self.is_visible({name!r})")

        wait = f", wait_before={loc.wait_before!r}" if loc.wait_before else ""
        validate = ", validate_after=True" if loc.validate_after else ""
        for action in required:
            if action == ElementAction.FILL.value:
                add(f"fill{cap}", "self, text", f"self.fill({name!r}, text{wait}{validate})")
            elif action == ElementAction.CLICK.value:
                add(f"click{cap}", "self", f"self.click({name!r}{wait}{validate})")
            elif action == ElementAction.CLEAR.value:
                add(f"clear{cap}", "self", f"self.clear({name!r})")
            elif action == ElementAction.GET_VALUE.value:
                add(f"getValue{cap}", "self", f"return self.get_value({name!r})")
            elif action == ElementAction.CHECK.value:
                add(f"check{cap}", "self", f"self.check({name!r})")
            elif action == "uncheck":
                add(f"uncheck{cap}", "self", f"self.uncheck({name!r})")
            elif action == ElementAction.SELECT.value:
                add(f"select{cap}", "self, value", f"self.select({name!r}, value)")
        return list(methods.values())

    # ------------------------------------------------------------------
    # Spec

    def render_spec(self, assets: TestAssets, test_name: str, base_url: str) -> str:
        class_names = []
        for page_def in assets.all_page_objects:
            if page_def.class_name not in class_names:
                class_names.append(page_def.class_name)
        default_page = assets.page_object.class_name
        config = self.resolver_config
        width, height = self.viewport

        safe_name = test_name.replace('"', "'")
        lines = [GENERATED_HEADER.format(source=f" from test case '{safe_name}'")]
        lines += [
            "import pytest",
            "from playwright.sync_api import sync_playwright",
            "",
            "from visionqa.pages import BasePage",
            "from visionqa.resolver import ResolverConfig",
            "",
        ]
        lines += [f"from {module_name_for(c)} import {c}" for c in class_names]
        lines += [
            "",
            f"BASE_URL = {base_url!r}",
            f"ARTIFACTS_DIR = {self.artifacts_dir!r}",
            f"DEBUG_DIR = {self.debug_dir!r}",
            f"RESOLVER_CONFIG = ResolverConfig(candidate_timeout_ms={config.candidate_timeout_ms}, "
            f"extended_timeout_ms={config.extended_timeout_ms})",
            "",
            "",
            "@pytest.fixture",
            "def browser_page(request):",
            "    with sync_playwright() as p:",
            f"        browser = p.{self.browser}.launch(headless={self.headless!r})",
            f"        context = browser.new_context(viewport={{\"width\": {width}, \"height\": {height}}})",
            "        page = context.new_page()",
            "        page.set_default_timeout(30000)",
            "        yield page",
            "        if getattr(request.node, \"visionqa_failed\", False):",
            "            BasePage(page).capture_failure(ARTIFACTS_DIR, request.node.name)",
            "        browser.close()",
            "",
            "",
            f"def test_{slugify(test_name)}(browser_page):",
            f"    {test_name!r}",
        ]
        for c in class_names:
            lines.append(
                f"    {instance_name_for(c)} = {c}(browser_page, base_url=BASE_URL, "
                f"resolver_config=RESOLVER_CONFIG, debug_dir=DEBUG_DIR)"
            )

        for index, step in enumerate(assets.test_steps, start=1):
            lines.append("")
            lines.append(f"    # Step {index}: {step.action} on {step.page or default_page}")
            lines.extend(f"    {code}" for code in self._render_step(step, class_names, default_page))
        return "\n".join(lines) + "\n"

    def _render_step(self, step: TestStep, class_names: List[str], default_page: str) -> List[str]:
        page = step.page or default_page
        if page not in class_names:
            logger.warning("Skipping step %r: unknown page %r", step.action, step.page)
            return [f"# Skipped: unknown page {step.page!r}"]
        instance = instance_name_for(page)
        params = ", ".join(repr(p) for p in step.params)
        action = step.action

        if "navigate" in action.lower():
            path = repr(step.params[0]) if step.params else "''"
            return [f"{instance}.navigate({path})"]
        if action.startswith("expect"):
            return [f"{instance}.assert_url_contains({params})"]
        if not action.isidentifier():
            logger.warning("Skipping step with invalid action name %r", action)
            return [f"# Skipped: invalid action {action!r}"]

        code = []
        wait_for = step.wait_for or {}
        element = wait_for.get("element") if isinstance(wait_for, dict) else None
        if element and not action.startswith("waitFor"):
            code.append(f"{instance}.wait_for_visible({element!r})")
        code.append(f"{instance}.{action}({params})")
        return code
