import hashlib

from tender_harvester.scrapers.fingerprint import (
    FINGERPRINT_LENGTH,
    fingerprint_opportunity,
    generate_fingerprint,
)


def test_fingerprint_is_truncated_sha256_of_concatenation():
    expected = hashlib.sha256("Road RepavingRFP-0012025-01-01ontario".encode("utf-8")).hexdigest()[:40]
    assert generate_fingerprint(["Road Repaving", "RFP-001", "2025-01-01", "ontario"]) == expected


def test_fingerprint_is_deterministic():
    parts = ["Bridge Inspection", "RFP-002", "2025-02-01", "merx"]
    assert generate_fingerprint(parts) == generate_fingerprint(list(parts))


def test_empty_and_missing_parts_still_produce_a_digest():
    digest = generate_fingerprint(["", None, ""])
    assert len(digest) == FINGERPRINT_LENGTH
    assert digest == hashlib.sha256(b"").hexdigest()[:40]
    assert all(ch in "0123456789abcdef" for ch in digest)


def test_portal_key_salts_the_fingerprint():
    first = fingerprint_opportunity("Snow Removal", "T-10", "2025-03-01", "mississauga")
    second = fingerprint_opportunity("Snow Removal", "T-10", "2025-03-01", "saskatoon")
    assert first != second


def test_canonical_field_order():
    assert fingerprint_opportunity("A", "B", "C", "D") == generate_fingerprint(["A", "B", "C", "D"])
    assert fingerprint_opportunity("A", "B", "C", "D") != generate_fingerprint(["B", "A", "C", "D"])
