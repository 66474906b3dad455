"""
Credential hashing.

Issuers anchor a hash of the credential document, never the document. A
JSON document is canonicalized first (sorted keys, no whitespace, UTF-8)
so that two serializations of the same credential hash alike.
"""

from __future__ import annotations

import json
from typing import Any

from cryptography.hazmat.primitives import hashes


def canonicalize_json(data: dict[str, Any]) -> str:
    """Canonicalize JSON in the manner of JCS (RFC 8785).

    Args:
        data: Dictionary to canonicalize.

    Returns:
        Canonical JSON string.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def credential_hash(document: dict[str, Any] | str | bytes) -> str:
    """Compute the registry hash of a credential.

    Args:
        document: A parsed credential, or its raw text or bytes. Raw input
            is hashed exactly as given.

    Returns:
        Lowercase hex SHA-256 digest.
    """
    if isinstance(document, dict):
        document = canonicalize_json(document)
    if isinstance(document, str):
        document = document.encode("utf-8")

    digest = hashes.Hash(hashes.SHA256())
    digest.update(document)
    return digest.finalize().hex()
