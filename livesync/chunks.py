"""Content addressing for chunk (leaf) documents."""

from __future__ import annotations

import hashlib

CHUNK_PREFIX = "h:"
DIGEST_LENGTH = 40


def identify(content: str | bytes) -> str:
    """Return the chunk id for *content*: ``h:`` + 40 hex chars of its SHA-256.

    Text is hashed as UTF-8, so ``identify(s) == identify(s.encode())``.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    digest = hashlib.sha256(content).hexdigest()
    return f"{CHUNK_PREFIX}{digest[:DIGEST_LENGTH]}"


def is_chunk_id(doc_id: str) -> bool:
    """True if *doc_id* has the shape produced by :func:`identify`."""
    if not doc_id.startswith(CHUNK_PREFIX):
        return False
    digest = doc_id[len(CHUNK_PREFIX):]
    return len(digest) == DIGEST_LENGTH and all(c in "0123456789abcdef" for c in digest)
