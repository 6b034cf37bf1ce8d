"""
File fingerprinting — SHA-256 of document content, stored on each policy
so the same upload can be traced across batches.
"""

import hashlib


def compute_content_hash(content: bytes, algorithm: str = "sha256") -> str:
    """Hash in-memory document bytes."""
    h = hashlib.new(algorithm)
    h.update(content)
    return h.hexdigest()
