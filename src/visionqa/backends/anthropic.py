"""
Anthropic backend implementation for visionQA.

Supports Claude models with image input through the Messages API.
"""

from typing import Any, Dict, Sequence, Union

from .base import (
    ASSET_PROMPT,
    LOCATE_PROMPT,
    BackendError,
    VisionBackend,
    VisualMatch,
    extract_json,
    user_story_text,
)

SYSTEM_PROMPT = "Respond with a single valid JSON object and nothing else: no prose, no markdown fences."


class AnthropicBackend(VisionBackend):
    """
    Anthropic implementation of VisionBackend.

    Example:
        ```python
        backend = AnthropicBackend(api_key="your-anthropic-api-key")
        assets = backend.generate_test_assets(user_story, screenshot_b64)
        ```
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514", timeout: float = 120.0):
        """
        Initialize Anthropic backend.

        Args:
            api_key: Anthropic API key
            model: Claude model name
            timeout: Request timeout in seconds
        """
        import anthropic

        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
        self.model = model

    def _call_vision(self, prompt: str, screenshot_b64: str, max_tokens: int = 1000) -> str:
        """Make a vision API call to Anthropic."""
        message = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=0.05,
            system=SYSTEM_PROMPT,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": screenshot_b64,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        # Only text blocks carry the answer
        return "".join(
            getattr(block, "text", "") for block in message.content if getattr(block, "type", None) == "text"
        )

    def generate_test_assets(
        self,
        user_story: Union[str, Sequence[str]],
        screenshot_b64: str,
    ) -> Dict[str, Any]:
        """Generate the asset document using Claude vision."""
        prompt = ASSET_PROMPT.format(user_story=user_story_text(user_story))
        try:
            text = self._call_vision(prompt, screenshot_b64, max_tokens=8192)
        except Exception as e:
            raise BackendError(f"Anthropic request failed: {e}") from e
        if not text:
            raise BackendError(f"{self.model} returned no text content")
        try:
            data = extract_json(text)
        except ValueError as e:
            raise BackendError(f"{self.model} did not return a JSON asset document: {e}") from e
        if not isinstance(data, dict):
            raise BackendError(f"{self.model} returned {type(data).__name__}, expected an object")
        return data

    def locate_element(self, description: str, screenshot_b64: str) -> VisualMatch:
        """Locate an element on the screenshot using Claude vision."""
        prompt = LOCATE_PROMPT.format(description=description)
        try:
            text = self._call_vision(prompt, screenshot_b64)
        except Exception as e:
            return VisualMatch(found=False, reason=f"AI error: {str(e)[:100]}")
        try:
            data = extract_json(text)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return VisualMatch.from_dict(data)
        except ValueError as e:
            return VisualMatch(found=False, reason=f"Parse error: {e}")
