"""OpenAI vision calls that read source code out of a screenshot."""

import base64

from openai import OpenAI

from codeshot.core.config import get_settings
from codeshot.core.prompts import build_ocr_prompt

_client: OpenAI | None = None


def reset_client() -> None:
    """Reset the cached OpenAI client. Call this after changing API keys."""
    global _client
    _client = None


def _get_client() -> OpenAI:
    """Lazy initialization of OpenAI client.

    SDK-level retries are disabled; the recognizer owns the retry policy.
    """
    global _client
    if _client is None:
        settings = get_settings()
        _client = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.recognition_timeout,
            max_retries=0,
        )
    return _client


def extract_code_from_image(image_bytes: bytes, mime_type: str) -> str:
    """Send one screenshot to the vision model and return the code it reads.

    Args:
        image_bytes: Raw image content
        mime_type: MIME type of the image, e.g. image/png

    Returns:
        Recognized source text, stripped of surrounding whitespace

    Raises:
        ValueError: If the image is empty
        openai.OpenAIError: On any API failure, including RateLimitError
    """
    if not image_bytes:
        raise ValueError("Image is empty.")

    settings = get_settings()
    encoded = base64.b64encode(image_bytes).decode("ascii")
    resp = _get_client().chat.completions.create(
        model=settings.recognition_model,
        temperature=0,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_ocr_prompt(settings.code_language)},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                    },
                ],
            }
        ],
    )
    if not resp.choices:
        return ""
    return (resp.choices[0].message.content or "").strip()
