"""
AI Vision Backends for visionQA.

Each backend implements the VisionBackend interface: generating the test
asset document from a screenshot and a user story, and locating a single
element visually when its selectors stop working.

Available Backends:
    - GeminiBackend: Google Gemini (gemini-2.5-pro)
    - OpenAIBackend: OpenAI (gpt-4o)
    - AnthropicBackend: Anthropic Claude

Example:
    ```python
    from visionqa.backends import GeminiBackend, create_backend

    backend = GeminiBackend(api_key="...")
    backend = create_backend("openai", api_key="...")
    ```
"""

from typing import Optional

from .base import (
    BackendError,
    VisionBackend,
    VisualMatch,
    extract_json,
)
from .anthropic import AnthropicBackend
from .gemini import GeminiBackend
from .openai import OpenAIBackend


def create_backend(name: str, api_key: str, model: Optional[str] = None) -> VisionBackend:
    """Build a backend by name ("gemini", "openai" or "anthropic")."""
    name = (name or "").lower()
    if name == "gemini":
        return GeminiBackend(api_key=api_key, model=model) if model else GeminiBackend(api_key=api_key)
    if name == "openai":
        return OpenAIBackend(api_key=api_key, model=model) if model else OpenAIBackend(api_key=api_key)
    if name == "anthropic":
        return AnthropicBackend(api_key=api_key, model=model) if model else AnthropicBackend(api_key=api_key)
    raise ValueError(f"Unknown backend: {name!r} (expected 'gemini', 'openai' or 'anthropic')")


__all__ = [
    "VisionBackend",
    "VisualMatch",
    "BackendError",
    "GeminiBackend",
    "OpenAIBackend",
    "AnthropicBackend",
    "create_backend",
    "extract_json",
]
