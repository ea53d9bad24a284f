"""
pytest plugin that writes a JSON execution report.

    pytest -p visionqa.report --visionqa-report results.json generated/test_login.py

The report follows the nesting of the Playwright JSON reporter, which is
what FailureClassifier reads:

    {"suites": [{"title": "<file>", "suites": [{"title": "<module>",
      "specs": [{"title": "<test>", "ok": false,
        "tests": [{"results": [{"status": "failed", "duration": 1234,
          "error": {"message": "...", "stack": "..."},
          "stdout": [{"text": "..."}], "stderr": [...]}]}]}]}]}],
     "stats": {...}}

Captured log output is included in ``stdout``, so warnings emitted by the
resolver (ambiguous selectors) reach the classifier.
"""

import time
import traceback
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List

import pytest

from .assets import write_json_atomic


def pytest_addoption(parser):
    group = parser.getgroup("visionqa")
    group.addoption(
        "--visionqa-report",
        action="store",
        dest="visionqa_report",
        default=None,
        metavar="PATH",
        help="Write a structured JSON execution report to PATH.",
    )


def pytest_configure(config):
    path = config.getoption("visionqa_report", None)
    if path and not hasattr(config, "_visionqa_collector"):
        config._visionqa_collector = ReportCollector(path)
        config.pluginmanager.register(config._visionqa_collector, "visionqa-report-collector")


def pytest_unconfigure(config):
    collector = getattr(config, "_visionqa_collector", None)
    if collector is not None:
        del config._visionqa_collector
        config.pluginmanager.unregister(collector)


def format_error(excinfo) -> Dict[str, str]:
    """Error message and a standard Python traceback for the stack field."""
    stack = "".join(traceback.format_exception(excinfo.type, excinfo.value, excinfo.tb))
    return {"message": f"{excinfo.typename}: {excinfo.value}", "stack": stack}


class ReportCollector:
    """Collects one result per test and writes the report at session end."""

    def __init__(self, path):
        self.path = Path(path)
        self.started = time.time()
        # file -> module -> [spec]
        self.files: "OrderedDict[str, OrderedDict[str, List[Dict[str, Any]]]]" = OrderedDict()
        self.stats = {"expected": 0, "unexpected": 0, "skipped": 0}

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtest_makereport(self, item, call):
        outcome = yield
        report = outcome.get_result()

        if report.failed:
            item.visionqa_failed = True
        if report.when == "call" or (report.when == "setup" and not report.passed):
            self._add_result(item, call, report)

    def _add_result(self, item, call, report) -> None:
        if report.skipped:
            status = "skipped"
            self.stats["skipped"] += 1
        elif report.failed:
            status = "failed"
            self.stats["unexpected"] += 1
        else:
            status = "passed"
            self.stats["expected"] += 1

        stdout = [s for s in (report.capstdout, report.caplog) if s]
        result: Dict[str, Any] = {
            "status": status,
            "duration": int(report.duration * 1000),
            "stdout": [{"text": text} for text in stdout],
            "stderr": [{"text": report.capstderr}] if report.capstderr else [],
        }
        if report.failed and call.excinfo is not None:
            result["error"] = format_error(call.excinfo)

        path = str(item.path) if hasattr(item, "path") else str(item.fspath)
        module = item.module.__name__ if getattr(item, "module", None) else Path(path).stem
        specs = self.files.setdefault(path, OrderedDict()).setdefault(module, [])
        specs.append({
            "title": item.name,
            "ok": status != "failed",
            "tests": [{"results": [result]}],
        })

    def to_dict(self) -> Dict[str, Any]:
        suites = []
        for path, modules in self.files.items():
            suites.append({
                "title": Path(path).name,
                "file": path,
                "suites": [{"title": module, "specs": specs} for module, specs in modules.items()],
            })
        stats = dict(self.stats)
        stats["duration"] = int((time.time() - self.started) * 1000)
        return {"suites": suites, "stats": stats}

    def pytest_sessionfinish(self, session, exitstatus):
        write_json_atomic(self.path, self.to_dict())
