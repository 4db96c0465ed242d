"""App configuration — environment variable loading with typed defaults.

Loads settings from .env file (via python-dotenv) and os.environ.
Real environment variables take precedence over .env file values.

The AI settings mirror what the editor extension exposes to the user:
endpoint, key, model name, the request-rate floor, the analysis debounce
delay, the file size limit and the feature switches.

Usage:
    from codecoach.config import get_settings
    settings = get_settings()
    print(settings.ai_api_min_interval_ms)  # 2000
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Only load .env from the project root — don't traverse parent directories.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DOTENV_PATH = PROJECT_ROOT / ".env"

_DEFAULT_ENDPOINT = "https://api.siliconflow.cn/v1/chat/completions"
_DEFAULT_MODEL = "Qwen/Qwen2.5-Coder-7B-Instruct"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the CodeCoach assistant.

    All fields have sensible defaults for local development except the
    API key, which stays empty until the user configures one.
    """

    # App
    app_env: str
    app_port: int
    log_level: str
    cors_origins: list[str]

    # Model endpoint
    ai_backend: str
    ai_api_endpoint: str
    ai_api_key: str
    ai_model_name: str
    ai_request_timeout_s: float

    # Request orchestration
    ai_api_min_interval_ms: int
    ai_max_attempts: int
    ai_retry_delay_ms: int

    # Analysis
    ai_analysis_delay_ms: int
    ai_max_file_size_kb: int
    analysis_languages: list[str]

    # Features
    enable_ai_analysis: bool
    enable_ai_code_completion: bool
    enable_tab_completion: bool
    enable_progressive_learning: bool
    progressive_learning_max_tokens: int
    completion_max_items: int
    completion_trigger_chars: int


def _split_csv(value: str) -> list[str]:
    """Splits a comma-separated string into a list of stripped, non-empty values."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(env_var: str, value: str) -> bool:
    """Parses a boolean flag from its environment string.

    Raises:
        ValueError: If the value is not a recognised boolean spelling.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(
        f"Invalid value for {env_var}: {value!r}. "
        f"Expected one of: {', '.join(sorted(_TRUE_VALUES | _FALSE_VALUES))}"
    )


def _parse_int(env_var: str, value: str, minimum: int = 0) -> int:
    """Parses a non-negative integer setting.

    Raises:
        ValueError: If the value is not an integer or is below minimum.
    """
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"Invalid value for {env_var}: {value!r}. Expected an integer.") from None
    if parsed < minimum:
        raise ValueError(f"Invalid value for {env_var}: {parsed}. Must be >= {minimum}.")
    return parsed


def _env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _load_settings() -> Settings:
    """Loads configuration from .env file and environment variables.

    Returns:
        A fully resolved Settings instance.
    """
    load_dotenv(_DOTENV_PATH)

    ai_backend = _env("AI_BACKEND", "http")
    if ai_backend not in ("http", "mock"):
        raise ValueError(
            f"Invalid value for AI_BACKEND: {ai_backend!r}. Valid options: http, mock"
        )

    # A custom model name wins over the preset one, like the editor setting.
    model_name = _env("AI_CUSTOM_MODEL_NAME", "").strip() or _env("AI_MODEL_NAME", _DEFAULT_MODEL)

    return Settings(
        # App
        app_env=_env("APP_ENV", "development"),
        app_port=_parse_int("APP_PORT", _env("APP_PORT", "8000"), minimum=1),
        log_level=_env("LOG_LEVEL", "info"),
        cors_origins=_split_csv(
            _env("CORS_ORIGINS", "vscode-webview://*,http://localhost:3000")
        ),
        # Model endpoint
        ai_backend=ai_backend,
        ai_api_endpoint=_env("AI_API_ENDPOINT", _DEFAULT_ENDPOINT).strip(),
        ai_api_key=_env("AI_API_KEY", "").strip(),
        ai_model_name=model_name,
        ai_request_timeout_s=float(_parse_int(
            "AI_REQUEST_TIMEOUT_S", _env("AI_REQUEST_TIMEOUT_S", "60"), minimum=1,
        )),
        # Request orchestration
        ai_api_min_interval_ms=_parse_int(
            "AI_API_MIN_INTERVAL_MS", _env("AI_API_MIN_INTERVAL_MS", "2000"),
        ),
        ai_max_attempts=_parse_int("AI_MAX_ATTEMPTS", _env("AI_MAX_ATTEMPTS", "3"), minimum=1),
        ai_retry_delay_ms=_parse_int("AI_RETRY_DELAY_MS", _env("AI_RETRY_DELAY_MS", "2000")),
        # Analysis
        ai_analysis_delay_ms=_parse_int(
            "AI_ANALYSIS_DELAY_MS", _env("AI_ANALYSIS_DELAY_MS", "1500"),
        ),
        ai_max_file_size_kb=_parse_int(
            "AI_MAX_FILE_SIZE_KB", _env("AI_MAX_FILE_SIZE_KB", "100"), minimum=1,
        ),
        analysis_languages=_split_csv(_env("ANALYSIS_LANGUAGES", "cpp,c")),
        # Features
        enable_ai_analysis=_parse_bool(
            "ENABLE_AI_ANALYSIS", _env("ENABLE_AI_ANALYSIS", "true"),
        ),
        enable_ai_code_completion=_parse_bool(
            "ENABLE_AI_CODE_COMPLETION", _env("ENABLE_AI_CODE_COMPLETION", "true"),
        ),
        enable_tab_completion=_parse_bool(
            "ENABLE_TAB_COMPLETION", _env("ENABLE_TAB_COMPLETION", "true"),
        ),
        enable_progressive_learning=_parse_bool(
            "ENABLE_PROGRESSIVE_LEARNING", _env("ENABLE_PROGRESSIVE_LEARNING", "true"),
        ),
        progressive_learning_max_tokens=_parse_int(
            "PROGRESSIVE_LEARNING_MAX_TOKENS",
            _env("PROGRESSIVE_LEARNING_MAX_TOKENS", "3000"),
            minimum=1,
        ),
        completion_max_items=_parse_int(
            "COMPLETION_MAX_ITEMS", _env("COMPLETION_MAX_ITEMS", "5"), minimum=1,
        ),
        completion_trigger_chars=_parse_int(
            "COMPLETION_TRIGGER_CHARS", _env("COMPLETION_TRIGGER_CHARS", "3"),
        ),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Returns the singleton Settings instance. Loads .env on first call."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings
