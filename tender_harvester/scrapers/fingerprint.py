"""
Content fingerprints used as the deduplication key for opportunities.
"""

import hashlib
from typing import Iterable, Optional

FINGERPRINT_LENGTH = 40


def generate_fingerprint(parts: Iterable[Optional[str]]) -> str:
    """
    Hash the concatenation of ``parts`` into a stable 40 character key.

    Parts are joined without separators, so callers must pass fields that
    already discriminate (and salt them with a portal key). ``None`` is
    treated as an empty string.

    Args:
        parts: Strings to concatenate and hash

    Returns:
        First 40 hex characters of the SHA-256 digest
    """
    content = "".join(part or "" for part in parts)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def fingerprint_opportunity(
    title: str,
    project_reference: str,
    listing_expiry_date: str,
    portal_key: str
) -> str:
    """Fingerprint in the canonical field order: title, reference, expiry, portal salt."""
    return generate_fingerprint([title, project_reference, listing_expiry_date, portal_key])
