"""URL and request utility functions."""
import urllib.parse
from typing import Mapping


def decode_session_id(session_id: str) -> str:
    """
    Decode a URL-encoded session ID.

    Args:
        session_id: Potentially URL-encoded session ID

    Returns:
        Decoded session ID
    """
    try:
        return urllib.parse.unquote(session_id)
    except Exception:
        # If decoding fails, return original
        return session_id


def client_ip(headers: Mapping[str, str]) -> str:
    """Resolve the client IP from proxy headers (first X-Forwarded-For hop wins)."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or "unknown"
