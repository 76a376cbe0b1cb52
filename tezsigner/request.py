"""High watermarks of consensus sign requests."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .keys import b58check_decode, b58check_encode

BLOCK_PAYLOAD_HASH_PREFIX = bytes((1, 106, 242))
BLOCK_PAYLOAD_HASH_LENGTH = 32


@runtime_checkable
class WatermarkedRequest(Protocol):
    """A sign request that carries a chain, a level and a round."""

    kind: str
    chain_id: bytes
    level: int
    round: int


@dataclass
class Watermark:
    """Last signed level and round, with the payload hash that was signed."""

    level: int
    round: int
    hash: bytes | None = None

    def validate(self, stored: Watermark) -> bool:
        """Return True if this watermark may be signed over ``stored``."""
        if self.hash is not None and stored.hash is not None and self.hash == stored.hash:
            return True
        diff = self.level - stored.level
        if diff == 0:
            diff = self.round - stored.round
        return diff > 0

    def to_json(self) -> dict[str, Any]:
        """Return the JSON object for this watermark."""
        return {
            "level": self.level,
            "round": self.round,
            "hash": None
            if self.hash is None
            else b58check_encode(BLOCK_PAYLOAD_HASH_PREFIX, self.hash),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Watermark:
        """Build a watermark from its JSON object."""
        text = data.get("hash")
        digest = None
        if text is not None:
            raw = b58check_decode(text)
            if (
                not raw.startswith(BLOCK_PAYLOAD_HASH_PREFIX)
                or len(raw) != len(BLOCK_PAYLOAD_HASH_PREFIX) + BLOCK_PAYLOAD_HASH_LENGTH
            ):
                raise ValueError(f"invalid block payload hash: {text}")
            digest = raw[len(BLOCK_PAYLOAD_HASH_PREFIX):]
        return cls(level=int(data.get("level", 0)), round=int(data.get("round", 0)), hash=digest)


def new_watermark(req: WatermarkedRequest, digest: bytes) -> Watermark:
    """Return the watermark of a request whose message hashes to ``digest``."""
    return Watermark(level=req.level, round=req.round, hash=bytes(digest))