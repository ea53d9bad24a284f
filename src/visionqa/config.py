"""
Runtime settings, read from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

BROWSERS = ("chromium", "firefox", "webkit")

API_KEY_VARS = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
}


@dataclass
class Settings:
    backend: str = "gemini"
    api_key: Optional[str] = None
    model: Optional[str] = None
    knowledge_dir: str = "./knowledge-base"
    output_dir: str = "./generated"
    max_retries: int = 1
    max_candidates: int = 5
    candidate_timeout_ms: int = 3000
    extended_timeout_ms: int = 15000
    test_timeout_s: int = 300
    fix_threshold: float = 0.8
    retention_days: Optional[int] = 180
    max_selectors: Optional[int] = 20
    max_history: Optional[int] = 500
    log_level: str = "INFO"
    headless: bool = True
    browser: str = "chromium"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        ``.env`` in the working directory is loaded first unless ``dotenv`` is
        False; variables already set in the environment win.
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        backend = environ.get("VISIONQA_BACKEND", "gemini").strip().lower()
        if backend not in API_KEY_VARS:
            raise ValueError(f"VISIONQA_BACKEND must be one of {sorted(API_KEY_VARS)}, got {backend!r}")
        api_key = next((environ[v] for v in API_KEY_VARS[backend] if environ.get(v)), None)

        settings = cls(
            backend=backend,
            api_key=api_key,
            model=environ.get("VISIONQA_MODEL") or None,
            knowledge_dir=environ.get("VISIONQA_KNOWLEDGE_DIR", "./knowledge-base"),
            output_dir=environ.get("VISIONQA_OUTPUT_DIR", "./generated"),
            max_retries=_int(environ, "VISIONQA_MAX_RETRIES", 1),
            max_candidates=_int(environ, "VISIONQA_MAX_CANDIDATES", 5),
            candidate_timeout_ms=_int(environ, "VISIONQA_CANDIDATE_TIMEOUT_MS", 3000),
            extended_timeout_ms=_int(environ, "VISIONQA_EXTENDED_TIMEOUT_MS", 15000),
            test_timeout_s=_int(environ, "VISIONQA_TEST_TIMEOUT_S", 300),
            fix_threshold=_float(environ, "VISIONQA_FIX_THRESHOLD", 0.8),
            retention_days=_optional_int(environ, "VISIONQA_RETENTION_DAYS", 180),
            max_selectors=_optional_int(environ, "VISIONQA_MAX_SELECTORS", 20),
            max_history=_optional_int(environ, "VISIONQA_MAX_HISTORY", 500),
            log_level=environ.get("VISIONQA_LOG_LEVEL", "INFO").upper(),
            headless=environ.get("VISIONQA_HEADLESS", "true").strip().lower() not in ("0", "false", "no"),
            browser=environ.get("VISIONQA_BROWSER", "chromium").strip().lower(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.browser not in BROWSERS:
            raise ValueError(f"VISIONQA_BROWSER must be one of {list(BROWSERS)}, got {self.browser!r}")
        if self.max_retries < 0:
            raise ValueError("VISIONQA_MAX_RETRIES must not be negative")
        if self.max_candidates < 1:
            raise ValueError("VISIONQA_MAX_CANDIDATES must be at least 1")
        if not 0.0 <= self.fix_threshold <= 1.0:
            raise ValueError("VISIONQA_FIX_THRESHOLD must be between 0 and 1")
        # Exhausting every candidate must not trip the outer test timeout first
        worst_case_ms = self.candidate_timeout_ms * self.max_candidates + self.extended_timeout_ms
        if worst_case_ms >= self.test_timeout_s * 1000:
            raise ValueError(
                "VISIONQA_TEST_TIMEOUT_S must exceed the worst-case selector resolution time "
                f"({worst_case_ms} ms)"
            )


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _optional_int(environ: Mapping[str, str], name: str, default: int) -> Optional[int]:
    """Like _int, but "none" / "off" disables the limit."""
    raw = environ.get(name)
    if raw is not None and raw.strip().lower() in ("none", "off"):
        return None
    return _int(environ, name, default)


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
