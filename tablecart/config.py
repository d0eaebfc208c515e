"""
Runtime configuration.

Everything comes from environment variables; call ``load_env()`` first when
running from a checkout with a ``.env`` file.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from tablecart.errors import ERROR_API_URL_MISSING

DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_REALTIME_POLL_SECS = 1.0


def load_env(path: Optional[str] = None) -> bool:
    """Load a .env file into os.environ without overriding set variables."""
    return load_dotenv(dotenv_path=path, override=False)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class CartApiSettings:
    """Settings for the REST cart client."""
    base_url: str
    session_token: Optional[str] = None
    timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "CartApiSettings":
        base_url = os.environ.get("TABLECART_API_URL", "")
        if not base_url:
            raise ValueError(ERROR_API_URL_MISSING)
        return cls(
            base_url=base_url.rstrip("/"),
            session_token=os.environ.get("TABLECART_SESSION_TOKEN") or None,
            timeout=_float_env("TABLECART_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )


def get_realtime_poll_interval() -> float:
    """Seconds between two stream reads of the Redis channel."""
    return _float_env("TABLECART_REALTIME_POLL_SECS", DEFAULT_REALTIME_POLL_SECS)
