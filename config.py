"""
Configuration constants for the TempMailHub gateway.

This module contains provider settings (timeouts, retries, priority, enabled
flag, credentials), health thresholds and logging switches. Every value can be
overridden through the environment or a .env file.
"""

import os
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

from models import ChannelConfiguration


# Load environment variables from .env file
# Check for .env in current directory first (for zipapp support)
env_path = Path.cwd() / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)
else:
    try:
        load_dotenv()
    except AssertionError:
        # Can happen in zipapp if .env is missing and finding logic fails
        pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ==============================================================================
# Service Settings
# ==============================================================================

SERVICE_NAME: str = "TempMailHub"
SERVICE_VERSION: str = "1.0.0"

# Optional bearer key, enforced by the HTTP layer in front of the service
TEMPMAILHUB_API_KEY: str = os.getenv("TEMPMAILHUB_API_KEY", "")

# Print log lines to the console
LOG_ENABLED: bool = _env_bool("LOG_ENABLED", True)

# ==============================================================================
# Transport Settings
# ==============================================================================

# Request timeout in seconds
DEFAULT_TIMEOUT: float = float(os.getenv("DEFAULT_TIMEOUT", 15))

# Extra attempts on connection errors / timeouts
DEFAULT_RETRIES: int = int(os.getenv("DEFAULT_RETRIES", 2))

# Seconds to wait before retry N (multiplied by N)
RETRY_BACKOFF: float = float(os.getenv("RETRY_BACKOFF", 1.0))

# ==============================================================================
# Health Settings
# ==============================================================================

# Success rate (percent) below which a reachable provider is reported degraded
HEALTH_DEGRADED_THRESHOLD: float = float(os.getenv("HEALTH_DEGRADED_THRESHOLD", 80))

# Minimum number of requests before the success rate is taken into account
HEALTH_MIN_SAMPLE: int = int(os.getenv("HEALTH_MIN_SAMPLE", 5))

# ==============================================================================
# Mailbox Settings
# ==============================================================================

# Lease assumed for providers that only report the creation time
DEFAULT_EMAIL_TTL_MINUTES: int = int(os.getenv("DEFAULT_EMAIL_TTL_MINUTES", 15))

# Default page size for inbox listings
DEFAULT_PAGE_LIMIT: int = 20

# ==============================================================================
# Provider Settings
# ==============================================================================

# Providers in creation priority order (lower value is tried first)
PROVIDER_PRIORITY: List[str] = ["minmail", "tempmailplus", "mailtm", "etempmail"]

# Mailbox PIN for tempmail.plus protected inboxes
TEMPMAILPLUS_EPIN: str = os.getenv("TEMPMAILPLUS_EPIN", "")

# Lifetime requested from minmail.app, in minutes
MINMAIL_EXPIRE_MINUTES: int = int(os.getenv("MINMAIL_EXPIRE_MINUTES", 1440))

PROVIDER_CREDENTIALS: Dict[str, Dict[str, str]] = {
    "tempmailplus": {"epin": TEMPMAILPLUS_EPIN},
    "minmail": {"expire": str(MINMAIL_EXPIRE_MINUTES)},
}


def get_channel_configs() -> List[ChannelConfiguration]:
    """
    Build one ChannelConfiguration per known provider.

    Reads <NAME>_ENABLED, <NAME>_PRIORITY, <NAME>_TIMEOUT and <NAME>_RETRIES
    from the environment at call time.

    Returns:
        Configurations in priority order.
    """
    configs: List[ChannelConfiguration] = []

    for index, name in enumerate(PROVIDER_PRIORITY):
        prefix = name.upper()
        configs.append(ChannelConfiguration(
            name=name,
            enabled=_env_bool(f"{prefix}_ENABLED", True),
            priority=int(os.getenv(f"{prefix}_PRIORITY", (index + 1) * 10)),
            timeout=float(os.getenv(f"{prefix}_TIMEOUT", DEFAULT_TIMEOUT)),
            retries=int(os.getenv(f"{prefix}_RETRIES", DEFAULT_RETRIES)),
            credentials=dict(PROVIDER_CREDENTIALS.get(name, {}))
        ))

    return sorted(configs, key=lambda c: c.priority)
