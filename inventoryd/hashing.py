"""
Checksums for inventoryd.

All checksums use SHA-256 with lowercase hexadecimal output and carry their
algorithm as a prefix: ``"sha256:<hex>"``. The prefix lets a future reader
recognise (and refuse) a checksum produced by an algorithm it does not know.
"""

import hashlib
from typing import Any, Union

from .canonicalization import canonicalize, to_json_tree

ALGORITHM = "sha256"


def sha256_hash(data: Union[bytes, str]) -> str:
    """
    Compute SHA-256 hash in prefixed form.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    if isinstance(data, str):
        data = data.encode('utf-8')

    digest = hashlib.sha256(data).hexdigest().lower()
    return f"{ALGORITHM}:{digest}"


def checksum_of(obj: Any) -> str:
    """
    Checksum of the canonical serialization of ``obj``.

    Pydantic models are first rendered to their JSON tree, so a model and the
    dict decoded from its persisted JSON produce the same checksum.
    """
    return sha256_hash(canonicalize(to_json_tree(obj)))


def split_checksum(checksum: str) -> tuple:
    """Split ``"algo:hex"`` into ``(algo, hex)``; algo is '' when unprefixed."""
    algorithm, sep, digest = checksum.partition(":")
    if not sep:
        return "", checksum
    return algorithm, digest


def verify_hash(declared_hash: str, data: Union[bytes, str]) -> bool:
    """
    Verify that data matches a declared hash.

    Plain value comparison: this guards against corruption, not against a
    writer who can also rewrite the checksum.
    """
    algorithm, _ = split_checksum(declared_hash)
    if algorithm != ALGORITHM:
        return False
    return sha256_hash(data) == declared_hash
