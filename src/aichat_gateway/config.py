"""Platform-aware path resolution and environment settings."""

import os
import sys
from pathlib import Path

DEFAULT_GENERATION_TIMEOUT = 30.0
DEFAULT_TITLE_TIMEOUT = 8.0


def get_data_path() -> Path:
    """Return the directory holding keys, model selection and the thread database."""
    env = os.environ.get("AICHAT_GATEWAY_DATA_PATH")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "aichat-gateway"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "aichat-gateway"
    else:  # Linux
        xdg = os.environ.get("XDG_DATA_HOME")
        if xdg:
            return Path(xdg) / "aichat-gateway"
        return Path.home() / ".local" / "share" / "aichat-gateway"


def get_keys_path() -> Path:
    """Return the path of the persisted API keys file."""
    return get_data_path() / "api-keys.json"


def get_selection_path() -> Path:
    """Return the path of the persisted model selection file."""
    return get_data_path() / "model-store.json"


def get_threads_db_path() -> Path:
    """Return the path of the SQLite thread database."""
    return get_data_path() / "threads.sqlite3"


def get_generation_timeout() -> float:
    """Upper bound in seconds for a single upstream generation call."""
    return _float_env("AICHAT_GATEWAY_TIMEOUT", DEFAULT_GENERATION_TIMEOUT)


def get_title_timeout() -> float:
    """Hard cutoff in seconds for one title-pipeline request."""
    return _float_env("AICHAT_GATEWAY_TITLE_TIMEOUT", DEFAULT_TITLE_TIMEOUT)


def get_key_policy() -> str:
    """Return "none" (chat usable without keys) or "any" (needs one key)."""
    policy = os.environ.get("AICHAT_GATEWAY_KEY_POLICY", "none").strip().lower()
    return policy if policy in ("none", "any") else "none"


def title_regeneration_enabled() -> bool:
    """Whether a thread that already has a title may be retitled."""
    value = os.environ.get("AICHAT_GATEWAY_TITLE_REGENERATION", "1").strip().lower()
    return value not in ("0", "false", "no", "off")


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default
