"""
Cryptographic primitives for artifact integrity.

Current scope:
- Deterministic SHA-256 digest of finished artifact bytes

Explicit non-scope:
- Reading artifacts from disk
- Signing or sealing

This module hashes bytes, and bytes only.
"""

import hashlib
from typing import Union


def compute_document_hash(artifact_bytes: Union[bytes, bytearray]) -> str:
    """
    Compute the hex SHA-256 digest of a finished artifact.

    Args:
        artifact_bytes:
            The exact bytes handed to blob storage.

    Returns:
        Lower-case hex digest (64 characters).
    """
    if not isinstance(artifact_bytes, (bytes, bytearray)):
        raise TypeError(
            "compute_document_hash expects artifact bytes, "
            f"got {type(artifact_bytes).__name__}"
        )

    return hashlib.sha256(artifact_bytes).hexdigest()
