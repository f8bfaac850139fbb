"""LLM-based merge of ordered code fragments through OpenRouter."""

import httpx

from codeshot.core.config import get_settings
from codeshot.core.errors import AssemblyFailedError, MergeUnavailableError
from codeshot.core.logging import get_logger
from codeshot.core.prompts import build_merge_prompt

logger = get_logger(__name__)

_client: httpx.Client | None = None


def reset_client() -> None:
    """Close and drop the cached OpenRouter client."""
    global _client
    if _client is not None:
        _client.close()
    _client = None


def _get_client() -> httpx.Client:
    """Lazy initialization of OpenRouter HTTP client."""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.merge_available:
            raise MergeUnavailableError("Missing OpenRouter API key.")
        _client = httpx.Client(
            base_url=settings.openrouter_base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {settings.openrouter_api_key}",
                "Accept": "application/json",
            },
            timeout=settings.merge_timeout,
        )
    return _client


def merge_code_fragments(fragments: list[str]) -> str:
    """Ask the merge model to stitch rendered fragments into source files.

    Args:
        fragments: Rendered fragments in reading order, markers included

    Returns:
        The merged source text

    Raises:
        MergeUnavailableError: No credentials, network failure, 429 or 5xx;
            the caller should fall back to plain concatenation
        AssemblyFailedError: The model answered with an error or nothing usable
    """
    settings = get_settings()
    client = _get_client()
    prompt = build_merge_prompt(settings.code_language, fragments)

    try:
        response = client.post(
            "/chat/completions",
            json={
                "model": settings.merge_model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
                "stream": False,
            },
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.TimeoutException as e:
        raise MergeUnavailableError(f"OpenRouter request timed out: {e}") from e
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        body = e.response.text[:200] if e.response.text else "no body"
        if status_code == 429 or status_code >= 500:
            raise MergeUnavailableError(f"OpenRouter HTTP error {status_code}: {body}") from e
        raise AssemblyFailedError(f"OpenRouter HTTP error {status_code}: {body}") from e
    except httpx.HTTPError as e:
        raise MergeUnavailableError(f"OpenRouter request failed: {e}") from e
    except (ValueError, TypeError) as e:
        raise AssemblyFailedError(f"Failed to parse OpenRouter response: {e}") from e

    merged = _extract_message_content(payload)
    if not merged:
        raise AssemblyFailedError("Empty response from OpenRouter merge model.")

    logger.debug("Merged %d fragments into %d characters", len(fragments), len(merged))
    return merged


def _extract_message_content(payload: dict) -> str:
    """Safely extract the assistant message content from OpenRouter payload."""
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first, dict) else {}
    content = message.get("content") if isinstance(message, dict) else ""
    return _strip_code_fences(str(content or "").strip())


def _strip_code_fences(text: str) -> str:
    """Drop a ```lang ... ``` wrapper the model may add despite instructions."""
    lines = text.splitlines()
    if len(lines) >= 2 and lines[0].startswith("```") and lines[-1].strip() == "```":
        return "\n".join(lines[1:-1]).strip()
    return text
