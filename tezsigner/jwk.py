"""JSON Web Key encoding and decoding for EC and RSA keys."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec, rsa

_EC_TYPES = ("EC", "EC-HSM")
_RSA_TYPES = ("RSA", "RSA-HSM")
_B64URL = re.compile(r"[A-Za-z0-9_-]*")

_CURVES_BY_NAME = {
    "P-224": ec.SECP224R1,
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
    "P-256K": ec.SECP256K1,
    "SECP256K1": ec.SECP256K1,
    "secp256k1": ec.SECP256K1,
}

_CURVE_NAMES = {
    "secp224r1": "P-224",
    "secp256r1": "P-256",
    "secp384r1": "P-384",
    "secp521r1": "P-521",
    "secp256k1": "P-256K",
}

_JSON_NAMES = {
    "key_type": "kty",
    "public_key_use": "use",
    "key_operations": "key_ops",
    "algorithm": "alg",
    "key_id": "kid",
    "x509_url": "x5u",
    "x509_thumbprint": "x5t",
    "x509_sha256_thumbprint": "x5t#S256",
    "x509_chain": "x5c",
    "curve": "crv",
    "x": "x",
    "y": "y",
    "n": "n",
    "e": "e",
    "p": "p",
    "q": "q",
    "dp": "dp",
    "dq": "dq",
    "qi": "qi",
    "oth": "oth",
    "d": "d",
    "k": "k",
    "key_hsm": "key_hsm",
}


class PublicOnlyError(ValueError):
    """Raised when a private key is requested from a JWK without private part."""

    def __init__(self) -> None:
        super().__init__("public key")


def _decode_uint(text: str) -> int:
    if not _B64URL.fullmatch(text) or len(text) % 4 == 1:
        raise ValueError(f"jwk: illegal base64 data: {text!r}")
    raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    return int.from_bytes(raw, "big")


def _encode_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def curve_by_name(name: str) -> ec.EllipticCurve | None:
    """Return the curve for a JWK curve name, or None if unknown."""
    cls = _CURVES_BY_NAME.get(name)
    return cls() if cls is not None else None


def curve_name(curve: ec.EllipticCurve) -> str:
    """Return the JWK name of a curve, or an empty string if unknown."""
    return _CURVE_NAMES.get(curve.name, "")


@dataclass
class JWK:
    """A JSON Web Key; integers are unpadded base64url strings."""

    key_type: str = ""
    public_key_use: str = ""
    key_operations: list[str] = field(default_factory=list)
    algorithm: str = ""
    key_id: str = ""
    x509_url: str = ""
    x509_thumbprint: str = ""
    x509_sha256_thumbprint: str = ""
    x509_chain: list[str] = field(default_factory=list)
    curve: str = ""
    x: str = ""
    y: str = ""
    n: str = ""
    e: str = ""
    p: str = ""
    q: str = ""
    dp: str = ""
    dq: str = ""
    qi: str = ""
    oth: list[dict[str, str]] = field(default_factory=list)
    d: str = ""
    k: str = ""
    key_hsm: str = ""

    def _ec_public_key(self) -> ec.EllipticCurvePublicKey:
        curve = curve_by_name(self.curve)
        if curve is None:
            raise ValueError(f"jwk: unknown curve: {self.curve}")
        x = _decode_uint(self.x)
        y = _decode_uint(self.y)
        try:
            return ec.EllipticCurvePublicNumbers(x, y, curve).public_key()
        except ValueError:
            raise ValueError(f"jwk: invalid point: {x}, {y}") from None

    def _rsa_public_numbers(self) -> rsa.RSAPublicNumbers:
        n = _decode_uint(self.n)
        e = _decode_uint(self.e)
        if n <= 0 or e <= 0:
            raise ValueError("jwk: public key contains zero or negative value")
        if e > (1 << 31) - 1:
            raise ValueError("jwk: public key contains large public exponent")
        return rsa.RSAPublicNumbers(e, n)

    def public_key(self) -> ec.EllipticCurvePublicKey | rsa.RSAPublicKey:
        """Decode the public key held in this JWK."""
        if self.key_type in _EC_TYPES:
            return self._ec_public_key()
        if self.key_type in _RSA_TYPES:
            return self._rsa_public_numbers().public_key()
        raise ValueError(f"jwk: unknown key type: {self.key_type}")

    def private_key(self) -> ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey:
        """Decode the private key held in this JWK."""
        if self.key_type in _EC_TYPES:
            if not self.d:
                raise PublicOnlyError()
            public = self._ec_public_key()
            d = _decode_uint(self.d)
            return ec.EllipticCurvePrivateNumbers(d, public.public_numbers()).private_key()
        if self.key_type in _RSA_TYPES:
            if not self.d:
                raise PublicOnlyError()
            public = self._rsa_public_numbers()
            d = _decode_uint(self.d)
            p = _decode_uint(self.p)
            q = _decode_uint(self.q)
            for prime in self.oth:
                if _decode_uint(prime.get("r", "")) <= 0:
                    raise ValueError("jwk: private key contains zero or negative prime")
            if self.oth:
                raise ValueError("jwk: multi-prime RSA keys are not supported")
            numbers = rsa.RSAPrivateNumbers(
                p=p,
                q=q,
                d=d,
                dmp1=rsa.rsa_crt_dmp1(d, p),
                dmq1=rsa.rsa_crt_dmq1(d, q),
                iqmp=rsa.rsa_crt_iqmp(p, q),
                public_numbers=public,
            )
            return numbers.private_key()
        raise ValueError(f"jwk: unknown key type: {self.key_type}")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object, leaving out empty members."""
        out: dict[str, Any] = {"kty": self.key_type}
        for attr, name in _JSON_NAMES.items():
            if attr == "key_type":
                continue
            value = getattr(self, attr)
            if not value:
                continue
            if attr == "oth":
                out[name] = [{k: v for k, v in prime.items() if v} for prime in value]
            elif isinstance(value, list):
                out[name] = list(value)
            else:
                out[name] = value
        return out


def parse_jwk(data: Mapping[str, Any] | str | bytes) -> JWK:
    """Build a JWK from a JSON object or JSON text."""
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    kwargs: dict[str, Any] = {}
    for attr, name in _JSON_NAMES.items():
        if name not in data or data[name] is None:
            continue
        value = data[name]
        if attr == "oth":
            kwargs[attr] = [
                {"r": p.get("r", ""), "d": p.get("d", ""), "t": p.get("t", "")} for p in value
            ]
        elif isinstance(value, list):
            kwargs[attr] = list(value)
        else:
            kwargs[attr] = value
    return JWK(**kwargs)


def _from_ec_public(key: ec.EllipticCurvePublicKey) -> JWK:
    numbers = key.public_numbers()
    return JWK(
        key_type="EC",
        curve=curve_name(key.curve),
        x=_encode_uint(numbers.x),
        y=_encode_uint(numbers.y),
    )


def _from_rsa_public(numbers: rsa.RSAPublicNumbers) -> JWK:
    return JWK(key_type="RSA", n=_encode_uint(numbers.n), e=_encode_uint(numbers.e))


def encode_private_key(key: ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey) -> JWK:
    """Return a JWK holding the private key."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        jwk = _from_ec_public(key.public_key())
        jwk.d = _encode_uint(key.private_numbers().private_value)
        return jwk
    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.private_numbers()
        jwk = _from_rsa_public(numbers.public_numbers)
        jwk.d = _encode_uint(numbers.d)
        jwk.p = _encode_uint(numbers.p)
        jwk.q = _encode_uint(numbers.q)
        jwk.dp = _encode_uint(numbers.dmp1)
        jwk.dq = _encode_uint(numbers.dmq1)
        jwk.qi = _encode_uint(numbers.iqmp)
        return jwk
    raise TypeError(f"jwk: unknown private key type: {type(key).__name__}")


def encode_public_key(key: ec.EllipticCurvePublicKey | rsa.RSAPublicKey) -> JWK:
    """Return a JWK holding the public key."""
    if isinstance(key, ec.EllipticCurvePublicKey):
        return _from_ec_public(key)
    if isinstance(key, rsa.RSAPublicKey):
        return _from_rsa_public(key.public_numbers())
    raise TypeError(f"jwk: unknown public key type: {type(key).__name__}")