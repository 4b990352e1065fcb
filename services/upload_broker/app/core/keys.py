"""Storage key generation."""

import re
import secrets
import time

ANONYMOUS_OWNER = "anonymous"
DEFAULT_PREFIX = "uploads/"


def _sanitize_segment(value: str) -> str:
    """Strip characters that would change the key's path structure."""
    value = value.replace("\x00", "")
    return re.sub(r"[/\\]", "_", value)


def split_file_name(file_name: str) -> tuple[str, str]:
    """Split a file name into base name and extension on the last dot.

    Names without a usable extension return an empty extension:
    ``"README"``, ``".env"`` (a leading dot only) and ``"notes."`` (a
    trailing dot) all count as extensionless.
    """
    base, dot, extension = file_name.rpartition(".")
    if not dot or not base:
        return file_name, ""
    return base, extension


def make_key(
    file_name: str,
    owner_id: str | None = None,
    *,
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Build a unique object key for an upload.

    Format: ``{prefix}{owner}/{epoch_ms}-{random}-{base}.{ext}``. When the
    name has no extension the key ends in ``-{base}`` without a dot.
    Uniqueness comes from 64 random bits; the timestamp only orders keys.

    Args:
        file_name: Original client file name
        owner_id: Owner identifier, defaults to ``"anonymous"``
        prefix: Upload path prefix; a trailing slash is added if missing

    Returns:
        Storage key
    """
    if prefix and not prefix.endswith("/"):
        prefix = f"{prefix}/"

    owner = _sanitize_segment(owner_id or ANONYMOUS_OWNER)
    base, extension = split_file_name(_sanitize_segment(file_name))
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(8)

    name = f"{base}.{extension}" if extension else base
    return f"{prefix}{owner}/{timestamp}-{random_part}-{name}"
