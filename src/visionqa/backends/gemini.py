"""
Google Gemini backend implementation for visionQA.

Includes automatic fallback to cheaper models on rate limits.
"""

import logging
import time
from typing import Any, Dict, List, Sequence, Tuple, Union

from .base import (
    ASSET_PROMPT,
    LOCATE_PROMPT,
    BackendError,
    VisionBackend,
    VisualMatch,
    extract_json,
    user_story_text,
)

logger = logging.getLogger(__name__)

# Model hierarchy: primary -> fallback (on rate limits)
MODEL_FALLBACKS = {
    "gemini-2.5-pro": "gemini-2.0-flash",
    "gemini-2.5-flash": "gemini-2.0-flash",
    "gemini-2.0-flash": "gemini-1.5-flash",
    "gemini-1.5-flash": None,  # No fallback for cheapest model
}

# Low temperature keeps the model on the requested JSON format
GENERATION_CONFIG = {
    "temperature": 0.05,
    "top_k": 1,
    "top_p": 1,
    "max_output_tokens": 8192,
}


class GeminiBackend(VisionBackend):
    """
    Google Gemini implementation of VisionBackend.

    Example:
        ```python
        backend = GeminiBackend(api_key="your-gemini-api-key", model="gemini-2.5-pro")
        document = backend.generate_test_assets(story, screenshot_b64)
        ```
    """

    def __init__(self, api_key: str, model: str = "gemini-2.5-pro", fallback_model: str = None):
        """
        Initialize Gemini backend.

        Args:
            api_key: Google Generative AI API key
            model: Gemini model name (default: gemini-2.5-pro)
            fallback_model: Model to use when primary hits rate limits
                (default: next entry in MODEL_FALLBACKS)
        """
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        self.genai = genai
        if fallback_model is None:
            fallback_model = MODEL_FALLBACKS.get(model)
        self.primary_model_name = model
        self.fallback_model_name = fallback_model
        self.model = genai.GenerativeModel(model, generation_config=GENERATION_CONFIG)
        self.fallback_model = (
            genai.GenerativeModel(fallback_model, generation_config=GENERATION_CONFIG)
            if fallback_model else None
        )
        self.last_used_model = model

    def _make_image_part(self, screenshot_b64: str) -> Dict[str, Any]:
        return {
            "mime_type": "image/png",
            "data": screenshot_b64,
        }

    def _generate_with_fallback(self, content: List, max_retries: int = 3) -> Tuple[Any, str]:
        """
        Generate content with automatic fallback on rate limits.

        Returns:
            Tuple of (response, model_name_used)
        """
        models_to_try = [(self.model, self.primary_model_name)]
        if self.fallback_model:
            models_to_try.append((self.fallback_model, self.fallback_model_name))

        last_error = None

        for model, model_name in models_to_try:
            for attempt in range(max_retries):
                try:
                    response = model.generate_content(content, request_options={"timeout": 120})
                    self.last_used_model = model_name
                    return response, model_name
                except Exception as e:
                    error_str = str(e).lower()
                    is_rate_limit = "429" in error_str or "quota" in error_str or "rate" in error_str
                    last_error = e

                    if is_rate_limit:
                        if attempt < max_retries - 1:
                            wait_time = 10 * (attempt + 1)  # 10s, 20s, 30s
                            logger.warning(
                                "Rate limit on %s, waiting %ds (attempt %d/%d)",
                                model_name, wait_time, attempt + 1, max_retries,
                            )
                            time.sleep(wait_time)
                        else:
                            logger.warning("Rate limit exhausted on %s, trying fallback", model_name)
                            break
                    else:
                        if attempt < max_retries - 1:
                            time.sleep(1)
                        else:
                            raise BackendError(f"Gemini request failed on {model_name}: {e}") from e

        raise BackendError(f"All Gemini models failed: {last_error}")

    def generate_test_assets(
        self,
        user_story: Union[str, Sequence[str]],
        screenshot_b64: str,
    ) -> Dict[str, Any]:
        """Generate the asset document using Gemini vision."""
        prompt = ASSET_PROMPT.format(user_story=user_story_text(user_story))
        response, model_used = self._generate_with_fallback([
            prompt,
            self._make_image_part(screenshot_b64),
        ])
        try:
            data = extract_json(response.text)
        except (ValueError, AttributeError) as e:
            raise BackendError(f"{model_used} did not return a JSON asset document: {e}") from e
        if not isinstance(data, dict):
            raise BackendError(f"{model_used} returned {type(data).__name__}, expected an object")
        logger.info("Generated test assets with %s", model_used)
        return data

    def locate_element(self, description: str, screenshot_b64: str) -> VisualMatch:
        """Locate an element on the screenshot using Gemini vision."""
        prompt = LOCATE_PROMPT.format(description=description)
        try:
            response, _ = self._generate_with_fallback([
                prompt,
                self._make_image_part(screenshot_b64),
            ])
            data = extract_json(response.text)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return VisualMatch.from_dict(data)
        except (ValueError, AttributeError) as e:
            return VisualMatch(found=False, reason=f"Failed to parse AI response: {e}")
        except BackendError as e:
            return VisualMatch(found=False, reason=f"AI error: {str(e)[:100]}")
