"""Messages exchanged with an external policy hook and checks on its reply."""

from __future__ import annotations

import base64
import binascii
import ipaddress
import json
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Union

from .keys import PublicKeyHash, parse_public_key_hash

NONCE_LENGTH = 32

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
ReplyVerifier = Callable[[PublicKeyHash, bytes, str], bool]

_DECODER = json.JSONDecoder()
_WHITESPACE = " \t\n\r"


class PolicyHookError(Exception):
    """Raised when the policy hook refuses a request or its reply is invalid."""

    def __init__(self, message: str, http_status: int = 500) -> None:
        super().__init__(message)
        self.http_status = http_status


def _encode_bytes(value: bytes | None) -> str | None:
    if value is None:
        return None
    return base64.b64encode(value).decode("ascii")


def _decode_bytes(value: Any) -> bytes | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("byte fields must be base64 strings")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"illegal base64 data: {exc}") from None


def _as_text(data: str | bytes | bytearray) -> str:
    return data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data


def _load_object(data: Mapping[str, Any] | str | bytes | None) -> Mapping[str, Any]:
    if isinstance(data, (str, bytes, bytearray)):
        data = json.loads(_as_text(data))
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _raw_members(text: str) -> dict[str, str]:
    """Return the members of a JSON object with each value as its original text."""

    def skip(i: int) -> int:
        while i < len(text) and text[i] in _WHITESPACE:
            i += 1
        return i

    i = skip(0)
    if text[i:i + 1] != "{":
        raise ValueError("expected a JSON object")
    i = skip(i + 1)
    out: dict[str, str] = {}
    if text[i:i + 1] == "}":
        return out
    while True:
        key, i = _DECODER.raw_decode(text, i)
        if not isinstance(key, str):
            raise ValueError("object keys must be strings")
        i = skip(i)
        if text[i:i + 1] != ":":
            raise ValueError("expected ':' after object key")
        i = skip(i + 1)
        start = i
        _, i = _DECODER.raw_decode(text, i)
        out[key] = text[start:i]
        i = skip(i)
        sep = text[i:i + 1]
        if sep == ",":
            i = skip(i + 1)
        elif sep == "}":
            return out
        else:
            raise ValueError("expected ',' or '}' in object")


@dataclass
class PolicyHookRequest:
    """Request sent to the policy hook for each sign request."""

    request: bytes
    public_key_hash: str
    source: IPAddress | str | None = None
    client_key_hash: str | None = None
    nonce: bytes = field(default_factory=lambda: secrets.token_bytes(NONCE_LENGTH))

    def to_json(self) -> dict[str, Any]:
        """Return the JSON object sent to the hook."""
        out: dict[str, Any] = {
            "request": _encode_bytes(self.request),
            "source": "" if self.source is None else str(self.source),
        }
        if self.client_key_hash:
            out["client_key_hash"] = self.client_key_hash
        out["public_key_hash"] = self.public_key_hash
        out["nonce"] = _encode_bytes(self.nonce)
        return out


@dataclass
class PolicyHookReplyPayload:
    """Signed part of an authenticated hook reply."""

    status: int = 0
    error: str = ""
    public_key_hash: str = ""
    nonce: bytes | None = None

    def to_json(self) -> dict[str, Any]:
        """Return the JSON object of the payload."""
        return {
            "status": self.status,
            "error": self.error,
            "public_key_hash": self.public_key_hash,
            "nonce": _encode_bytes(self.nonce),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | str | bytes | None) -> PolicyHookReplyPayload:
        """Build a payload from a JSON object or JSON text."""
        obj = _load_object(data)
        status = obj.get("status") or 0
        if isinstance(status, bool) or not isinstance(status, int):
            raise ValueError("status must be an integer")
        return cls(
            status=status,
            error=obj.get("error") or "",
            public_key_hash=obj.get("public_key_hash") or "",
            nonce=_decode_bytes(obj.get("nonce")),
        )


@dataclass
class PolicyHookReply:
    """Authenticated hook reply: the payload as sent, and its signature."""

    payload: bytes
    signature: str = ""

    def to_json(self) -> dict[str, Any]:
        """Return the JSON object of the reply."""
        payload = json.loads(self.payload.decode("utf-8")) if self.payload else None
        return {"payload": payload, "signature": self.signature}

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | str | bytes) -> PolicyHookReply:
        """Build a reply, keeping the payload text exactly as received."""
        if isinstance(data, (str, bytes, bytearray)):
            members = _raw_members(_as_text(data))
            payload = members.get("payload", "null").encode("utf-8")
            signature = json.loads(members["signature"]) if "signature" in members else None
        else:
            payload = json.dumps(data.get("payload"), separators=(",", ":")).encode("utf-8")
            signature = data.get("signature")
        if signature is not None and not isinstance(signature, str):
            raise ValueError("signature must be a string")
        return cls(payload=payload, signature=signature or "")


def _status_line(status: int, reason: str | None) -> str:
    if not reason:
        try:
            reason = HTTPStatus(status).phrase
        except ValueError:
            reason = ""
    return f"{status} {reason}".rstrip()


def _denial(status: int, detail: str) -> PolicyHookError:
    """Build the error for a non-2xx hook reply: 4xx maps to 403, others to 500."""
    http_status = 403 if status // 100 == 4 else 500
    return PolicyHookError(f"policy hook: {detail}", http_status)


def evaluate_hook_reply(
    status: int,
    reason: str | None,
    body: str | bytes | None,
    nonce: bytes,
    verify: ReplyVerifier | None = None,
) -> None:
    """Raise PolicyHookError unless the hook reply allows the request.

    ``status`` and ``reason`` come from the HTTP response. Without
    ``verify`` only the status is checked. With it, the body must be a
    signed reply whose payload repeats ``status`` and ``nonce``;
    ``verify(pkh, payload, signature)`` checks the signature against the
    authorized key ``pkh`` and raises LookupError for an unknown key.
    """
    if verify is None:
        if status // 100 != 2:
            raise _denial(status, _status_line(status, reason))
        return

    try:
        reply = PolicyHookReply.from_json(body if body is not None else b"")
        payload = PolicyHookReplyPayload.from_json(reply.payload)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PolicyHookError(str(exc)) from exc

    if payload.status != status:
        raise PolicyHookError("the policy hook reply status must match the HTTP header")
    if (payload.nonce or b"") != bytes(nonce):
        raise PolicyHookError("nonce mismatch", 403)

    try:
        pkh = parse_public_key_hash(payload.public_key_hash)
    except ValueError as exc:
        raise PolicyHookError(str(exc), 403) from exc

    try:
        valid = verify(pkh, reply.payload, reply.signature)
    except LookupError as exc:
        raise PolicyHookError(f"policy hook reply key {pkh} is not authorized", 403) from exc
    if not valid:
        raise PolicyHookError("invalid hook reply signature", 403)

    if status // 100 != 2:
        raise _denial(status, payload.error or _status_line(status, reason))