"""
Configuration management for DropMind.

Settings come from the process environment. A project may keep them in
``<project>/.dropmind/.env``; that file is only read when a caller asks for
it through load_project_env, never as a side effect of importing this module.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from openai import OpenAI


class ConfigError(Exception):
    """Raised when a setting is missing or malformed."""

    pass


DEFAULT_SILENCE_TIMEOUT_MS = 3000
PROJECT_DIR = ".dropmind"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@lru_cache(maxsize=32)
def load_config(env_path: Optional[str] = None, override: bool = False) -> None:
    """
    Read one .env file into the environment, at most once per path.

    Passing no path loads nothing; resolve the project file with
    get_project_env_path first.
    """
    if env_path:
        load_dotenv(dotenv_path=env_path, override=override)


class Config:
    """Typed, always current view of the environment."""

    @property
    def openai_api_key(self) -> str:
        """API key for the Whisper speech source."""
        key = os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError(f"OPENAI_API_KEY is not set. Export it or add it to {PROJECT_DIR}/.env in your project.")
        return key

    @property
    def has_openai_api_key(self) -> bool:
        return bool(os.getenv("OPENAI_API_KEY"))

    @property
    def asr_model(self) -> str:
        """Transcription model (ASR_MODEL, default whisper-1)."""
        return os.getenv("ASR_MODEL", "whisper-1")

    @property
    def speech_language(self) -> Optional[str]:
        """Language hint such as "zh" (DM_SPEECH_LANG); None lets the service detect it."""
        return os.getenv("DM_SPEECH_LANG") or None

    @property
    def openai_timeout(self) -> int:
        """Request timeout in seconds (OPENAI_TIMEOUT, default 60)."""
        return _int_env("OPENAI_TIMEOUT", 60)

    @property
    def max_retries(self) -> int:
        """Retries per request (MAX_RETRIES, default 3)."""
        return _int_env("MAX_RETRIES", 3)

    @property
    def silence_timeout_ms(self) -> int:
        """Quiet period after which a capture session stops itself (DM_SILENCE_TIMEOUT_MS, default 3000)."""
        value = _int_env("DM_SILENCE_TIMEOUT_MS", DEFAULT_SILENCE_TIMEOUT_MS)
        if value <= 0:
            raise ConfigError(f"DM_SILENCE_TIMEOUT_MS must be positive, got {value}")
        return value

    @property
    def silence_timeout(self) -> float:
        return self.silence_timeout_ms / 1000.0


config = Config()

# --- Locating the project env file ---

DEFAULT_ENV_FILENAME = os.getenv("DM_ENV_FILENAME", ".env")
ENV_FILE_ENV_VARS = ("DM_ENV_FILE", "DROPMIND_ENV_FILE")
PROJECT_ROOT_ENV_VARS = ("DM_PROJECT_ROOT", "DROPMIND_PROJECT_ROOT")


def detect_project_root(start_dir: Optional[str] = None) -> Optional[Path]:
    """Nearest directory at or above start_dir (default: CWD) that holds a .dropmind folder."""
    start = Path(start_dir) if start_dir else Path.cwd()
    return next((candidate for candidate in (start, *start.parents) if (candidate / PROJECT_DIR).exists()), None)


def get_project_env_path(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME) -> Path:
    """Where the project env file lives, whether or not it exists yet."""
    if project_root:
        base = Path(project_root)
    else:
        base = detect_project_root() or Path.cwd()
    return base / PROJECT_DIR / filename


def _first_set(names) -> Optional[str]:
    return next((os.getenv(name) for name in names if os.getenv(name)), None)


def load_project_env(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME, override: bool = False) -> Optional[str]:
    """
    Load the env file for the current project.

    An explicit file named by DM_ENV_FILE (or DROPMIND_ENV_FILE) takes
    precedence. Otherwise the project root is project_root, then
    DM_PROJECT_ROOT, then the nearest directory holding .dropmind.

    Returns:
        The path that was loaded, or None when there was nothing to load
    """
    explicit = _first_set(ENV_FILE_ENV_VARS)
    if explicit and Path(explicit).is_file():
        load_config(explicit, override=override)
        return explicit

    env_path = get_project_env_path(project_root or _first_set(PROJECT_ROOT_ENV_VARS), filename)
    if not env_path.is_file():
        return None

    load_config(str(env_path), override=override)
    return str(env_path)


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    """
    Shared OpenAI client for the Whisper speech source.

    Falls back to the project env file when the key is not exported.

    Raises:
        ConfigError: If no API key can be found or the client cannot be built
    """
    if not config.has_openai_api_key:
        searched = load_project_env() or str(get_project_env_path())
        if not config.has_openai_api_key:
            raise ConfigError(f"OPENAI_API_KEY is not set and was not found in {searched}. Set it via environment, DM_ENV_FILE, or {PROJECT_DIR}/.env.")

    try:
        return OpenAI(api_key=config.openai_api_key, timeout=config.openai_timeout, max_retries=config.max_retries)
    except Exception as e:
        raise ConfigError(f"Failed to create OpenAI client: {e}")
