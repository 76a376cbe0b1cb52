"""Watermark backends that refuse to sign below the last signed level."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Dict, Protocol

from .keys import PublicKeyHash
from .request import Watermark, WatermarkedRequest, new_watermark

log = logging.getLogger(__name__)

RequestMap = Dict[str, Watermark]
DelegateMap = Dict[PublicKeyHash, RequestMap]
ChainMap = Dict[bytes, DelegateMap]


class WatermarkError(Exception):
    """Raised when a request is at or below the stored high watermark."""

    def __init__(self, message: str = "watermark validation failed") -> None:
        super().__init__(message)


class WatermarkBackend(Protocol):
    """Anything that can check a request against a high watermark."""

    def is_safe_to_sign(self, pkh: PublicKeyHash, req: Any, digest: bytes) -> None: ...


class Ignore:
    """Backend that accepts every request."""

    def is_safe_to_sign(self, pkh: PublicKeyHash, req: Any, digest: bytes) -> None:
        """Accept the request unconditionally."""
        return None


class InMemory:
    """Keeps watermarks in memory: chain -> delegate -> request kind."""

    def __init__(self, chains: ChainMap | None = None) -> None:
        self.chains: ChainMap = chains if chains is not None else {}
        self.lock = threading.Lock()

    def is_safe_to_sign(self, pkh: PublicKeyHash, req: Any, digest: bytes) -> None:
        """Raise WatermarkError unless ``req`` is above the stored watermark."""
        with self.lock:
            self._check_unlocked(pkh, req, digest)

    def _check_unlocked(self, pkh: PublicKeyHash, req: Any, digest: bytes) -> None:
        if not isinstance(req, WatermarkedRequest):
            return
        delegates = self.chains.setdefault(bytes(req.chain_id), {})
        requests = delegates.setdefault(pkh, {})
        watermark = new_watermark(req, digest)
        stored = requests.get(req.kind)
        if stored is not None and not watermark.validate(stored):
            raise WatermarkError()
        requests[req.kind] = watermark


BackendFactory = Callable[[Any, Any], WatermarkBackend]


class Registry(dict):
    """Watermark backend factories by name."""

    def new(self, name: str, conf: Any, global_config: Any) -> WatermarkBackend:
        """Create the backend registered under ``name``."""
        factory = self.get(name)
        if factory is None:
            raise ValueError(f"unknown watermark backend: {name}")
        log.info("Initializing watermark backend", extra={"backend": name})
        return factory(conf, global_config)


_REGISTRY = Registry()


def register_watermark(name: str, factory: BackendFactory) -> None:
    """Register a backend factory taking ``(conf, global_config)``."""
    _REGISTRY[name] = factory


def registry() -> Registry:
    """Return the global backend registry."""
    return _REGISTRY


register_watermark("mem", lambda conf, global_config: InMemory())