"""Tests for environment-based settings."""

import pytest

from visionqa.config import Settings


class TestFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.backend == "gemini"
        assert settings.api_key is None
        assert settings.max_retries == 1
        assert settings.retention_days == 180
        assert settings.headless

    def test_gemini_key_fallback(self):
        assert Settings.from_env({"GOOGLE_API_KEY": "g"}).api_key == "g"
        assert Settings.from_env({"GEMINI_API_KEY": "a", "GOOGLE_API_KEY": "g"}).api_key == "a"

    def test_openai_backend(self):
        settings = Settings.from_env({"VISIONQA_BACKEND": "OpenAI", "OPENAI_API_KEY": "sk", "GEMINI_API_KEY": "a"})
        assert settings.backend == "openai"
        assert settings.api_key == "sk"

    def test_anthropic_backend(self):
        settings = Settings.from_env({"VISIONQA_BACKEND": "anthropic", "ANTHROPIC_API_KEY": "sk-ant"})
        assert settings.backend == "anthropic"
        assert settings.api_key == "sk-ant"

    def test_browser(self):
        assert Settings.from_env({}).browser == "chromium"
        assert Settings.from_env({"VISIONQA_BROWSER": "Firefox"}).browser == "firefox"

    def test_overrides(self):
        settings = Settings.from_env({
            "VISIONQA_MAX_RETRIES": "3",
            "VISIONQA_FIX_THRESHOLD": "0.9",
            "VISIONQA_RETENTION_DAYS": "off",
            "VISIONQA_LOG_LEVEL": "debug",
            "VISIONQA_HEADLESS": "false",
        })
        assert settings.max_retries == 3
        assert settings.fix_threshold == 0.9
        assert settings.retention_days is None
        assert settings.log_level == "DEBUG"
        assert not settings.headless


class TestValidation:
    @pytest.mark.parametrize("environ, message", [
        ({"VISIONQA_BACKEND": "claude"}, "VISIONQA_BACKEND"),
        ({"VISIONQA_MAX_RETRIES": "many"}, "VISIONQA_MAX_RETRIES must be an integer"),
        ({"VISIONQA_MAX_RETRIES": "-1"}, "must not be negative"),
        ({"VISIONQA_FIX_THRESHOLD": "1.5"}, "between 0 and 1"),
        ({"VISIONQA_MAX_CANDIDATES": "0"}, "at least 1"),
        ({"VISIONQA_BROWSER": "safari"}, "VISIONQA_BROWSER"),
    ])
    def test_invalid_values(self, environ, message):
        with pytest.raises(ValueError, match=message):
            Settings.from_env(environ)

    def test_test_timeout_must_cover_resolution(self):
        """Exhausting every candidate must fit inside the test timeout."""
        with pytest.raises(ValueError, match="worst-case"):
            Settings.from_env({"VISIONQA_TEST_TIMEOUT_S": "20"})
        Settings.from_env({"VISIONQA_TEST_TIMEOUT_S": "31"})
