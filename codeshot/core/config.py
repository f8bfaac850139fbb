"""Runtime configuration and environment loading."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

_SETTINGS: "Settings | None" = None

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_RECOGNITION_MODEL = "gpt-4o-mini"
DEFAULT_MERGE_MODEL = "meta-llama/llama-3.3-70b-instruct"
DEFAULT_CODE_LANGUAGE = "Java/Kotlin"
DEFAULT_UPLOADS_DIR = os.path.join(tempfile.gettempdir(), "codeshot-uploads")


def reset_settings() -> None:
    """Reset cached settings. Call after changing environment variables."""
    global _SETTINGS
    _SETTINGS = None


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    recognition_model: str = DEFAULT_RECOGNITION_MODEL
    recognition_timeout: float = 60.0
    openrouter_api_key: str = ""
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL
    merge_model: str = DEFAULT_MERGE_MODEL
    merge_timeout: float = 120.0
    code_language: str = DEFAULT_CODE_LANGUAGE
    uploads_dir: str = DEFAULT_UPLOADS_DIR
    jobs_dir: str | None = None
    log_level: str = "INFO"

    @property
    def merge_available(self) -> bool:
        return bool(self.openrouter_api_key)


def load_env_file(path: str, *, override: bool = False) -> None:
    """Load key=value pairs from a .env-style file into os.environ.

    Keeps existing env values unless override=True.
    """
    env_path = Path(path)
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if not override and key in os.environ:
            continue
        os.environ[key] = value


def _required_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip() or default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got '{raw}'.") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}.")
    return value


def get_settings() -> Settings:
    """Load settings from codeshot.env and environment variables."""
    global _SETTINGS
    if _SETTINGS is not None:
        return _SETTINGS

    env_file = os.getenv("CODESHOT_ENV_FILE", "codeshot.env")
    load_env_file(env_file)

    _SETTINGS = Settings(
        openai_api_key=_required_env("OPENAI_API_KEY"),
        recognition_model=_optional_env("RECOGNITION_MODEL", DEFAULT_RECOGNITION_MODEL),
        recognition_timeout=_float_env("RECOGNITION_TIMEOUT", 60.0),
        openrouter_api_key=_optional_env("OPENROUTER_API_KEY"),
        openrouter_base_url=_optional_env("OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE_URL),
        merge_model=_optional_env("MERGE_MODEL", DEFAULT_MERGE_MODEL),
        merge_timeout=_float_env("MERGE_TIMEOUT", 120.0),
        code_language=_optional_env("CODE_LANGUAGE", DEFAULT_CODE_LANGUAGE),
        uploads_dir=_optional_env("UPLOADS_DIR", DEFAULT_UPLOADS_DIR),
        jobs_dir=_optional_env("JOBS_DIR") or None,
        log_level=_optional_env("LOG_LEVEL", "INFO").upper(),
    )
    return _SETTINGS
