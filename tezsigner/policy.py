"""Per-key signing policies and the checks made against them."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .keys import PublicKeyHash, parse_public_key_hash

log = logging.getLogger(__name__)

_REQUEST_RENAMES = {
    "endorsement": "attestation",
    "preendorsement": "preattestation",
}

_OPERATION_RENAMES = {
    "endorsement": "attestation",
    "preendorsement": "preattestation",
    "double_endorsement_evidence": "double_attestation_evidence",
    "double_preendorsement_evidence": "double_preattestation_evidence",
}


class PolicyError(Exception):
    """Raised when a request is refused by a key's policy."""

    http_status = 403


@dataclass
class PublicKeyPolicy:
    """What a key may sign and who may ask for it.

    ``authorized_key_hashes`` and ``authorized_jwt_users`` are ``None``
    when the policy places no restriction on clients or users.
    """

    allowed_requests: list[str] = field(default_factory=list)
    allowed_ops: list[str] = field(default_factory=list)
    log_payloads: bool = False
    authorized_key_hashes: list[PublicKeyHash] | None = None
    authorized_jwt_users: list[str] | None = None


DEFAULT_POLICY = PublicKeyPolicy(allowed_requests=["block", "preattestation", "attestation"])


def fixup_requests(requests: Iterable[str]) -> list[str]:
    """Rename legacy request kinds and return them sorted."""
    return sorted(_REQUEST_RENAMES.get(r, r) for r in requests)


def _as_pkh(value: PublicKeyHash | str) -> PublicKeyHash:
    if isinstance(value, PublicKeyHash):
        return value
    return parse_public_key_hash(value)


def _deprecation_example(requests: list[str], ops: list[str] | None) -> str:
    allow: dict[str, list[str] | None] = {r: None for r in requests}
    if ops is not None:
        allow["generic"] = ops
    lines = ["allow:"]
    for name in sorted(allow):
        values = allow[name]
        if not values:
            lines.append(f"    {name}: []")
        else:
            lines.append(f"    {name}:")
            lines.extend(f"        - {v}" for v in values)
    return "\n".join(lines) + "\n"


def _prepare_one(v: Mapping[str, Any]) -> PublicKeyPolicy:
    pol = PublicKeyPolicy(log_payloads=bool(v.get("log_payloads", False)))
    ops: list[str] | None = None

    allow = v.get("allow")
    allowed_kinds = v.get("allowed_kinds")
    allowed_operations = v.get("allowed_operations")

    if allow is not None:
        pol.allowed_requests = fixup_requests(allow.keys())
        if "generic" in allow:
            ops = sorted(allow["generic"] or [])
    elif allowed_kinds is not None or allowed_operations is not None:
        if allowed_operations is not None:
            pol.allowed_requests = fixup_requests(allowed_operations)
        if allowed_kinds is not None:
            ops = sorted(allowed_kinds)
        log.warning(
            "`allowed_operations` and `allowed_kinds` options are deprecated. Use `allow` instead:"
        )
        log.warning("%s", _deprecation_example(pol.allowed_requests, ops))

    if ops is not None:
        pol.allowed_ops = sorted(_OPERATION_RENAMES.get(o, o) for o in ops)

    authorized = v.get("authorized_keys")
    if authorized is not None:
        pol.authorized_key_hashes = [_as_pkh(k) for k in authorized]

    users = v.get("jwt_users")
    if users is not None:
        pol.authorized_jwt_users = list(users)

    return pol


def prepare_policy(
    src: Mapping[PublicKeyHash | str, Mapping[str, Any] | None],
) -> dict[PublicKeyHash, PublicKeyPolicy | None]:
    """Turn configured policies into prepared ones.

    Keys are public key hashes or their base58 form. A ``None`` entry
    selects the default policy and stays ``None`` in the result. Entries
    use the configuration names ``allow``, ``allowed_kinds``,
    ``allowed_operations``, ``log_payloads``, ``authorized_keys`` (key
    hashes) and ``jwt_users``.
    """
    out: dict[PublicKeyHash, PublicKeyPolicy | None] = {}
    for key, value in src.items():
        pkh = _as_pkh(key)
        out[pkh] = None if value is None else _prepare_one(value)
    return out


def match_filter(
    policy: PublicKeyPolicy,
    client_key_hash: PublicKeyHash | None,
    kind: str,
    operation_kinds: Iterable[str] | None = None,
) -> None:
    """Raise PolicyError unless the request is allowed by ``policy``.

    ``operation_kinds`` lists the kinds of the operations of a generic
    operation request, and is ``None`` for other requests.
    """
    if policy.authorized_key_hashes is not None:
        if client_key_hash is None:
            raise PolicyError("authentication required")
        if client_key_hash not in policy.authorized_key_hashes:
            raise PolicyError(f"client `{client_key_hash}' is not allowed")

    if kind not in policy.allowed_requests:
        raise PolicyError(f"request kind `{kind}' is not allowed")

    if operation_kinds is not None:
        for op in operation_kinds:
            if op not in policy.allowed_ops:
                raise PolicyError(f"operation `{op}' is not allowed")


def jwt_verify_user(
    user: str, policy: PublicKeyPolicy, public_key_hash: PublicKeyHash | str
) -> None:
    """Raise PolicyError if the policy names JWT users and ``user`` is not one."""
    log.debug("verifying JWT user %s against %s", user, policy.authorized_jwt_users)
    if policy.authorized_jwt_users is not None and user not in policy.authorized_jwt_users:
        raise PolicyError(f"user `{user}' is not authorized to access {public_key_hash}")