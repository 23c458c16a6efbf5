"""ULID-based request identifiers.

ULIDs are 26-character Crockford Base32 strings, URL-safe and sortable by
creation time across milliseconds.
"""

from ulid import ULID


def generate_id() -> str:
    """Generate a new ULID string.

    Example:
        >>> len(generate_id())
        26
    """
    return str(ULID())
