"""
Utility functions for the TempMailHub gateway.

Provides logging, error formatting, secret masking, and the HTML/date helpers
shared by every provider adapter.
"""

import html
import random
import re
import string
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Tuple

from config import LOG_ENABLED


def logger(message: str, level: int = 0) -> None:
    """
    Print a message with indentation based on level.

    Args:
        message: The message to print.
        level: Indentation level (each level adds 2 spaces).
    """
    if not LOG_ENABLED:
        return
    indent = "  " * level
    print(f"{indent}{message}")


def format_error(e: Exception) -> str:
    """
    Format an exception message on a single short line.

    requests exceptions embed the full urllib3 retry chain, which is only
    noise in the console. Keep the first line and cap its length.

    Args:
        e: The exception to format.

    Returns:
        A cleaned error message string.
    """
    text = str(e).strip().splitlines()[0] if str(e).strip() else e.__class__.__name__
    return text[:200]


def mask(value: Optional[str], show_chars: int = 3) -> str:
    """Mask sensitive data, showing only first few characters."""
    if not value:
        return "***"
    if len(value) <= show_chars:
        return "*" * len(value)
    return value[:show_chars] + "*" * (len(value) - show_chars)


def random_string(length: int = 10) -> str:
    """Generate a random lowercase alphanumeric string."""
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


def split_address(address: str) -> Tuple[str, str]:
    """
    Split an email address into (username, domain).

    The domain is lower-cased. Returns an empty domain when the address has
    no '@'.
    """
    username, _, domain = (address or "").strip().rpartition("@")
    if not username:
        return domain, ""
    return username, domain.lower()


_BLOCK_TAGS = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_BREAK_TAGS = re.compile(r"<\s*(br|/p|/div|/tr|/li|/h[1-6])\s*/?>", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")


def strip_html(content: Optional[str]) -> str:
    """
    Convert an HTML body to a plain-text view.

    Drops script/style blocks and tags, unescapes entities and collapses
    whitespace. The conversion is lossy.

    Args:
        content: HTML markup.

    Returns:
        Plain text.
    """
    if not content:
        return ""
    text = _BLOCK_TAGS.sub("", content)
    text = _BREAK_TAGS.sub("\n", text)
    text = _TAGS.sub("", text)
    text = html.unescape(text)
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def parse_date(value: Any) -> datetime:
    """
    Parse an upstream timestamp into an aware datetime (UTC when unknown).

    Accepts epoch seconds or milliseconds (int or numeric string), ISO-8601
    and RFC 2822 strings. Anything unparseable yields the current time.

    Args:
        value: Raw timestamp from a provider payload.

    Returns:
        Parsed datetime.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Values beyond year 33658 in seconds are milliseconds
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
        try:
            parsed = parsedate_to_datetime(text)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except (TypeError, ValueError, IndexError):
            pass

    return datetime.now(timezone.utc)
