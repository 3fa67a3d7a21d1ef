"""Startup configuration.

validate_config() checks that the required environment variables are set
before a view is mounted, so a missing URL fails loudly at startup rather
than as a silent, never-updating call screen. Settings.from_env() reads
the typed values.
"""

import os
import sys
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "LIVECALL_API_URL",
    "LIVECALL_WS_URL",
]

OPTIONAL_VARS = [
    "LIVECALL_API_KEY",
    "LIVECALL_HTTP_TIMEOUT",
    "LIVECALL_AUTO_ADVANCE",
    "LIVECALL_SIMULATED",
    "LOG_LEVEL",
]

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, value, default)
        return default


@dataclass
class Settings:
    api_url: str
    ws_url: str
    api_key: str = ""
    http_timeout: float = 10.0
    auto_advance: bool = True
    simulated: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_url=os.getenv("LIVECALL_API_URL", ""),
            ws_url=os.getenv("LIVECALL_WS_URL", ""),
            api_key=os.getenv("LIVECALL_API_KEY", ""),
            http_timeout=_env_float("LIVECALL_HTTP_TIMEOUT", 10.0),
            auto_advance=_env_bool("LIVECALL_AUTO_ADVANCE", True),
            simulated=_env_bool("LIVECALL_SIMULATED", False),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty. Missing optional variables are logged at debug level.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env or the process environment.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.debug("Optional env var %s is not set", var)
