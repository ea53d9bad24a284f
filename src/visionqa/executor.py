"""
Runs a generated pytest spec in a subprocess.
"""

import json
import logging
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    passed: bool
    raw_output: str  # JSON report when it holds a result, otherwise stdout + stderr
    report_path: Optional[Path] = None
    returncode: int = 0
    duration: float = 0.0


class PytestExecutor:
    """
    Executes one generated spec with the visionqa report plugin enabled.

    Usage:
        result = PytestExecutor(timeout_s=300).run("generated/test_login.py")
        if not result.passed:
            analysis = FailureClassifier().classify(result.raw_output)
    """

    def __init__(self, timeout_s: float = 300, python: str = sys.executable, extra_args: Optional[List[str]] = None):
        self.timeout_s = timeout_s
        self.python = python
        self.extra_args = list(extra_args or [])

    def command(self, spec_path: Path, report_path: Path) -> List[str]:
        return [
            self.python, "-m", "pytest", str(spec_path),
            "-p", "visionqa.report",
            "--visionqa-report", str(report_path),
            "--rootdir", str(spec_path.parent),
            "-p", "no:cacheprovider",
            "--log-level=INFO",
            "-q",
        ] + self.extra_args

    def run(self, spec_path, report_path=None) -> ExecutionResult:
        spec_path = Path(spec_path)
        report_path = Path(report_path) if report_path else spec_path.with_suffix(".report.json")
        if report_path.exists():
            report_path.unlink()

        cmd = self.command(spec_path, report_path)
        logger.info("Running %s", " ".join(cmd))
        start = time.time()
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired as e:
            duration = time.time() - start
            logger.error("Test execution timed out after %ss: %s", self.timeout_s, spec_path)
            partial = _text(e.stdout) + _text(e.stderr)
            return ExecutionResult(
                passed=False,
                raw_output=f"Timeout: test execution exceeded {self.timeout_s}s\n{partial}",
                report_path=None,
                returncode=-1,
                duration=duration,
            )
        duration = time.time() - start

        raw_output = proc.stdout + proc.stderr
        written = None
        if report_path.exists():
            try:
                report_text = report_path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Could not read execution report %s: %s", report_path, e)
            else:
                written = report_path
                if has_results(report_text):
                    raw_output = report_text
                else:
                    # Collection or setup errors never reach a test item
                    logger.info("Report %s has no test results, keeping process output", report_path)

        passed = proc.returncode == 0
        logger.info("%s %s in %.1fs", spec_path.name, "passed" if passed else "failed", duration)
        return ExecutionResult(
            passed=passed,
            raw_output=raw_output,
            report_path=written,
            returncode=proc.returncode,
            duration=duration,
        )


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def has_results(report_text: str) -> bool:
    """True when a JSON report holds at least one test result."""
    try:
        report = json.loads(report_text)
    except ValueError:
        return False
    if not isinstance(report, dict):
        return False
    return _suites_have_results(report.get("suites") or [])


def _suites_have_results(suites) -> bool:
    for suite in suites:
        if not isinstance(suite, dict):
            continue
        for spec in suite.get("specs") or []:
            for test in spec.get("tests") or []:
                if test.get("results"):
                    return True
        if _suites_have_results(suite.get("suites") or []):
            return True
    return False
