# tezsigner

A library of parts for a Tezos remote signer. It does not sign anything
itself. Instead it decides whether a request may be signed, and it keeps
track of what has already been signed.

## What is in it

- `tezsigner.policy` handles per-key signing policy.
  - `prepare_policy` turns configuration mappings into `PublicKeyPolicy`
    objects. It reads the `allow`, `allowed_kinds`, `allowed_operations`,
    `log_payloads`, `authorized_keys` and `jwt_users` entries.
  - `match_filter` checks the client key, the request kind and the operation
    kinds of a request.
  - `jwt_verify_user` checks a JWT user name.
  - Both checks raise `PolicyError`, whose `http_status` is 403.
  - `fixup_requests` renames `endorsement` and `preendorsement` to their
    `attestation` names and sorts the result.
- `tezsigner.watermark` provides high-watermark protection.
  - `InMemory` raises `WatermarkError` when a request is at or below the last
    signed level and round for the same chain, key and request kind. A request
    that repeats the exact payload hash is still accepted.
  - `Ignore` accepts everything.
  - `registry()` returns a `Registry` of backend factories. Use `new(name,
    conf, global_config)` to create a backend and `register_watermark` to add a
    factory. `"mem"` is registered by default, and `"file"` is registered once
    `tezsigner.filestore` is imported.
- `tezsigner.filestore.FileWatermark` extends `InMemory` and stores its
  watermarks on disk.
  - The data goes to `<base_dir>/watermark_v2/<chain id>.json`.
  - On first use it migrates data from the older `watermark` and
    `watermark_v1` directories, using `tezsigner.migration`.
  - `try_load`, `write_watermark_data` and `write_all` read and write that
    directory.
- `tezsigner.hook` handles the external policy hook.
  - `PolicyHookRequest` builds the JSON body sent to the hook, with a random
    32-byte nonce.
  - `PolicyHookReply` and `PolicyHookReplyPayload` model a signed reply.
  - `evaluate_hook_reply` decides from the HTTP status, the body and the nonce
    whether the hook allowed the request. If you pass a `verify` callback, it
    also checks the reply signature.
- `tezsigner.keys` covers keys and encodings.
  - `b58check_encode` and `b58check_decode` handle Base58Check.
  - `PublicKeyHash` and `parse_public_key_hash` handle tz1, tz2, tz3 and tz4
    key hashes.
  - `parse_chain_id` and `encode_chain_id` handle chain ids.
  - `authenticated_bytes_to_sign` builds the bytes a client signs to
    authenticate a request.
  - `operations_stat` counts operations by kind.
- `tezsigner.request` provides the `Watermark` record (level, round, payload
  hash) with its `validate` rule, `new_watermark`, and the `WatermarkedRequest`
  protocol. Any object with `kind`, `chain_id`, `level` and `round` attributes
  satisfies that protocol.
- `tezsigner.jwk` parses and emits EC and RSA JSON Web Keys.
  - `parse_jwk`, `JWK.public_key`, `JWK.private_key`, `encode_private_key`,
    `encode_public_key`, `curve_by_name` and `curve_name` do the conversions.
  - Asking a public-only key for its private part raises `PublicOnlyError`.
  - Multi-prime RSA keys are rejected.
- `tezsigner.mapparse.parse_map` reads `name value` and `name:value, ...`
  lists, with quoting and backslash escapes. It raises `MapParseError` on bad
  input.
- `tezsigner.options.Options` is a `dict` with the typed accessors `get_string`,
  `get_int` and `get_bool`. Each accessor returns `None` for an absent name.

## Installation

```
pip install tezsigner
```

## Examples

Parse a key/value list:

```python
from tezsigner.mapparse import parse_map

parse_map(' name1:value1, name2:"value 2" ', ":", ",")
# {'name1': 'value1', 'name2': 'value 2'}
```

Read typed options:

```python
from tezsigner.options import Options

opts = Options({"port": "0x10", "debug": "true"})
opts.get_int("port")      # 16
opts.get_bool("debug")    # True
opts.get_bool("missing")  # None
```

Guard against double signing:

```python
from dataclasses import dataclass

from tezsigner.keys import KeyKind, PublicKeyHash
from tezsigner.watermark import InMemory, WatermarkError

@dataclass
class Request:
    kind: str
    chain_id: bytes
    level: int
    round: int

pkh = PublicKeyHash(KeyKind.ED25519, bytes(20))
req = Request(kind="block", chain_id=b"\xed\x9d\x21\x7c", level=100, round=0)

wm = InMemory()
wm.is_safe_to_sign(pkh, req, b"\x00" * 32)      # accepted
try:
    wm.is_safe_to_sign(pkh, req, b"\x01" * 32)  # same level and round, other payload
except WatermarkError:
    pass
```

Keep watermarks across restarts:

```python
from tezsigner.filestore import FileWatermark

wm = FileWatermark("/var/lib/signer")
```

Check a request against a policy:

```python
from tezsigner.policy import PolicyError, match_filter, prepare_policy

policies = prepare_policy({pkh: {"allow": {"block": [], "generic": ["transaction"]}}})
policy = policies[pkh]
match_filter(policy, None, "generic", ["transaction"])   # allowed
try:
    match_filter(policy, None, "generic", ["delegation"])
except PolicyError as exc:
    print(exc)   # operation `delegation' is not allowed
```

Interpret a policy hook reply that carries no signature:

```python
from tezsigner.hook import PolicyHookError, PolicyHookRequest, evaluate_hook_reply

hook_req = PolicyHookRequest(request=b"\x11", public_key_hash=pkh.to_b58())
try:
    evaluate_hook_reply(403, "Forbidden", b"", hook_req.nonce)
except PolicyHookError as exc:
    print(exc, exc.http_status)   # policy hook: 403 Forbidden 403
```

## What it does not do

The package does not include:

- an HTTP server or a command-line program;
- key storage or vault backends;
- a decoder for binary Tezos operations;
- an HTTP client for calling the policy hook.

The caller is expected to supply these parts:

- Request kinds, levels, rounds and operation kinds come from the caller.
  They are passed as plain values, or as any object with the attributes the
  `WatermarkedRequest` protocol lists.
- Signature verification for hook replies is supplied through the `verify`
  callback of `evaluate_hook_reply`.

## Running the tests

```
pip install tezsigner[test]
pytest
```