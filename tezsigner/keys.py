"""Base58check encoding, public key hashes and request authentication bytes."""

from __future__ import annotations

import enum
import hashlib
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {ch: i for i, ch in enumerate(_ALPHABET)}

CHAIN_ID_PREFIX = bytes((87, 82, 0))
CHAIN_ID_LENGTH = 4
PUBLIC_KEY_HASH_LENGTH = 20


class KeyKind(enum.IntEnum):
    """Signature scheme of a key; the value is its binary tag."""

    ED25519 = 0
    SECP256K1 = 1
    P256 = 2
    BLS = 3


_PKH_PREFIXES = {
    KeyKind.ED25519: bytes((6, 161, 159)),
    KeyKind.SECP256K1: bytes((6, 161, 161)),
    KeyKind.P256: bytes((6, 161, 164)),
    KeyKind.BLS: bytes((6, 161, 166)),
}


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()[:4]


def b58check_encode(prefix: bytes, payload: bytes) -> str:
    """Encode ``prefix + payload`` with a four byte checksum in base58."""
    data = prefix + payload
    data += _checksum(data)
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_ALPHABET[rem])
    zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * zeros + "".join(reversed(digits))


def b58check_decode(text: str) -> bytes:
    """Decode base58check text and return the data without its checksum."""
    number = 0
    for ch in text:
        try:
            number = number * 58 + _INDEX[ch]
        except KeyError:
            raise ValueError(f"invalid base58 character {ch!r}") from None
    zeros = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    data = b"\x00" * zeros + body
    if len(data) < 4:
        raise ValueError("base58 data is too short")
    payload, check = data[:-4], data[-4:]
    if _checksum(payload) != check:
        raise ValueError("invalid base58 checksum")
    return payload


@dataclass(frozen=True)
class PublicKeyHash:
    """Hash of a public key together with its signature scheme."""

    kind: KeyKind
    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != PUBLIC_KEY_HASH_LENGTH:
            raise ValueError(
                f"public key hash must be {PUBLIC_KEY_HASH_LENGTH} bytes, got {len(self.digest)}"
            )

    def to_b58(self) -> str:
        """Return the base58check form (tz1, tz2, tz3 or tz4)."""
        return b58check_encode(_PKH_PREFIXES[self.kind], self.digest)

    def encode(self) -> bytes:
        """Return the binary form: tag byte followed by the digest."""
        return bytes((self.kind.value,)) + self.digest

    def __str__(self) -> str:
        return self.to_b58()


def parse_public_key_hash(text: str) -> PublicKeyHash:
    """Parse a base58check public key hash."""
    raw = b58check_decode(text)
    for kind, prefix in _PKH_PREFIXES.items():
        if raw.startswith(prefix) and len(raw) == len(prefix) + PUBLIC_KEY_HASH_LENGTH:
            return PublicKeyHash(kind, raw[len(prefix):])
    raise ValueError(f"unknown public key hash: {text}")


def parse_chain_id(text: str) -> bytes:
    """Parse a base58check chain id and return its four raw bytes."""
    raw = b58check_decode(text)
    if not raw.startswith(CHAIN_ID_PREFIX) or len(raw) != len(CHAIN_ID_PREFIX) + CHAIN_ID_LENGTH:
        raise ValueError(f"invalid chain id: {text}")
    return raw[len(CHAIN_ID_PREFIX):]


def encode_chain_id(raw: bytes) -> str:
    """Return the base58check form of a four byte chain id."""
    if len(raw) != CHAIN_ID_LENGTH:
        raise ValueError(f"chain id must be {CHAIN_ID_LENGTH} bytes, got {len(raw)}")
    return b58check_encode(CHAIN_ID_PREFIX, bytes(raw))


def authenticated_bytes_to_sign(public_key_hash: PublicKeyHash, message: bytes) -> bytes:
    """Return the bytes a client signs to authenticate a sign request."""
    return b"\x04\x01" + public_key_hash.encode() + bytes(message)


def operations_stat(kinds: Iterable[str]) -> dict[str, int]:
    """Count operations by kind."""
    return dict(Counter(kinds))