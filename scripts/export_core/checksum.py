"""
Hashing and identity utilities for the export pipeline.

Provides:
- digest(): deterministic 64-hex-character digest (SHA-256)
- random_id(): RFC-4122 version-4 identifier for export IDs
- checksum(): order-insensitive (per row) digest of an exported row set

Digests are unsalted on purpose: they are used for export integrity and
stable pseudonyms, so identical input must always give identical output.

The hashing primitive is an explicit strategy chosen once at import time.
Sha256Hasher is used whenever hashlib offers sha256; FallbackHasher is a
deterministic, non-cryptographic compatibility variant for hosts where it
is unavailable.
"""

import hashlib
import json
import random
import uuid
from typing import Any, Iterable, Mapping

DIGEST_LENGTH = 64

_MASK64 = 0xFFFFFFFFFFFFFFFF
_FNV_PRIME = 0x100000001B3
# One FNV offset basis per 16-hex-char lane of the fallback output
_LANE_SEEDS = (
    0xCBF29CE484222325,
    0x84222325CBF29CE4,
    0x9E3779B97F4A7C15,
    0xC2B2AE3D27D4EB4F,
)


class Hasher:
    """Hashing strategy interface."""

    name = 'abstract'

    def digest(self, text: str) -> str:
        raise NotImplementedError

    def random_id(self) -> str:
        raise NotImplementedError


class Sha256Hasher(Hasher):
    """Strong variant backed by hashlib and uuid4 (os.urandom)."""

    name = 'sha256'

    def digest(self, text: str) -> str:
        return hashlib.sha256(text.encode('utf-8', 'surrogatepass')).hexdigest()

    def random_id(self) -> str:
        return str(uuid.uuid4())


class FallbackHasher(Hasher):
    """
    Deterministic non-cryptographic variant.

    Four FNV-1a lanes with distinct offset bases, each finalized with the
    splitmix64 mixer, concatenated into 64 hex characters. Never raises and
    never returns an empty string.
    """

    name = 'fallback'

    def digest(self, text: str) -> str:
        data = str(text).encode('utf-8', 'surrogatepass')
        lanes = list(_LANE_SEEDS)

        for byte in data:
            for i in range(4):
                lanes[i] = ((lanes[i] ^ byte) * _FNV_PRIME) & _MASK64

        return ''.join(
            f"{_mix64(lane ^ len(data) ^ (i << 56)):016x}"
            for i, lane in enumerate(lanes)
        )

    def random_id(self) -> str:
        # Not unguessable, but unique enough within a process lifetime
        return str(uuid.UUID(int=random.getrandbits(128), version=4))


def _mix64(value: int) -> int:
    """splitmix64 finalizer."""
    value = ((value ^ (value >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    value = ((value ^ (value >> 27)) * 0x94D049BB133111EB) & _MASK64
    return value ^ (value >> 31)


def select_hasher() -> Hasher:
    """Pick the hashing strategy for this host."""
    if 'sha256' in hashlib.algorithms_available:
        return Sha256Hasher()
    return FallbackHasher()


_hasher: Hasher = select_hasher()


def get_hasher() -> Hasher:
    return _hasher


def set_hasher(hasher: Hasher) -> Hasher:
    """
    Replace the active hashing strategy.

    Args:
        hasher: The strategy to use from now on

    Returns:
        The previously active strategy (so callers can restore it)
    """
    global _hasher
    previous = _hasher
    _hasher = hasher
    return previous


def digest(text: str) -> str:
    """Deterministic 64-hex digest of a string."""
    return _hasher.digest(text)


def random_id() -> str:
    """Version-4 UUID string for export IDs."""
    return _hasher.random_id()


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and compact separators."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
        default=str,
    )


def checksum(rows: Iterable[Mapping[str, Any]]) -> str:
    """
    Compute the data checksum for a row set.

    Key order inside a row never changes the result; row order does.

    Args:
        rows: Exported rows

    Returns:
        64-hex digest of the canonical JSON serialization
    """
    return digest(canonical_json([dict(row) for row in rows]))
