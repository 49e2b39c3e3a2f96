"""
Environment variable readers.

Values are always stripped: a pasted STRIPE_WEBHOOK_SECRET or SMTP_PASS
with a trailing newline would otherwise fail at the first real request.
Empty counts as unset.
"""
import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

TRUTHY = frozenset({"1", "true", "yes", "on"})


def get_env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or default


def get_env_bool(name: str, default: bool = False) -> bool:
    """Unset -> default; "1"/"true"/"yes"/"on" -> True; anything else -> False."""
    value = get_env_str(name)
    if value is None:
        return default
    return value.lower() in TRUTHY


def get_env_int(name: str, default: int) -> int:
    value = get_env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"[Config] {name}={value!r} is not an integer. Using {default}.")
        return default
