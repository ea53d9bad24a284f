"""
OpenAI backend implementation for visionQA.

Supports GPT-4o and other OpenAI vision models.
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


class OpenAIBackend(VisionBackend):
    """
    OpenAI implementation of VisionBackend.

    Uses OpenAI's Chat Completions API with vision capabilities.

    Example:
        ```python
        backend = OpenAIBackend(api_key="your-openai-api-key", model="gpt-4o")
        match = backend.locate_element("login Button", screenshot_b64)
        ```
    """

    def __init__(self, api_key: str, model: str = "gpt-4o", timeout: float = 120.0):
        """
        Initialize OpenAI backend.

        Args:
            api_key: OpenAI API key
            model: OpenAI model name (default: gpt-4o)
            timeout: Request timeout in seconds
        """
        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model

    def _call_vision(self, prompt: str, screenshot_b64: str, max_tokens: int = 1000) -> str:
        """Make a vision API call to OpenAI."""
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:image/png;base64,{screenshot_b64}",
                            },
                        },
                    ],
                }
            ],
            max_tokens=max_tokens,
            temperature=0.05,
        )
        return response.choices[0].message.content or ""

    def generate_test_assets(
        self,
        user_story: Union[str, Sequence[str]],
        screenshot_b64: str,
    ) -> Dict[str, Any]:
        """Generate the asset document using GPT-4o vision."""
        prompt = ASSET_PROMPT.format(user_story=user_story_text(user_story))
        try:
            text = self._call_vision(prompt, screenshot_b64, max_tokens=8192)
        except Exception as e:
            raise BackendError(f"OpenAI request failed: {e}") from e
        try:
            data = extract_json(text)
        except ValueError as e:
            raise BackendError(f"{self.model} did not return a JSON asset document: {e}") from e
        if not isinstance(data, dict):
            raise BackendError(f"{self.model} returned {type(data).__name__}, expected an object")
        return data

    def locate_element(self, description: str, screenshot_b64: str) -> VisualMatch:
        """Locate an element on the screenshot using GPT-4o vision."""
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
