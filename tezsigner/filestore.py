"""Watermark backend persisted as one JSON file per chain."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .keys import PublicKeyHash, encode_chain_id, parse_public_key_hash
from .migration import (
    V0_WATERMARK_DIR,
    V1_WATERMARK_DIR,
    _load_chains,
    check_v0_exists,
    check_v1_exists,
    try_v0,
    try_v1,
)
from .request import Watermark, WatermarkedRequest
from .watermark import ChainMap, DelegateMap, InMemory, register_watermark

log = logging.getLogger(__name__)

WATERMARK_DIR = "watermark_v2"


def _decode_delegates(data: Any) -> DelegateMap:
    out: DelegateMap = {}
    for key, requests in (data or {}).items():
        out[parse_public_key_hash(key)] = {
            kind: Watermark.from_json(wm)
            for kind, wm in (requests or {}).items()
            if wm is not None
        }
    return out


def _encode_delegates(data: DelegateMap) -> dict[str, Any]:
    return {
        pkh.to_b58(): {kind: wm.to_json() for kind, wm in requests.items()}
        for pkh, requests in data.items()
    }


def try_load(base_dir: str | os.PathLike[str]) -> ChainMap | None:
    """Load current-layout data; None if the directory is absent."""
    return _load_chains(Path(base_dir) / WATERMARK_DIR, _decode_delegates)


def write_watermark_data(
    base_dir: str | os.PathLike[str], data: DelegateMap, chain_id: bytes
) -> None:
    """Write the watermarks of one chain to its JSON file."""
    directory = Path(base_dir) / WATERMARK_DIR
    directory.mkdir(mode=0o770, parents=True, exist_ok=True)
    path = directory / f"{encode_chain_id(chain_id)}.json"
    with open(path, "w", encoding="utf-8") as fd:
        json.dump(_encode_delegates(data), fd, indent=4)
        fd.write("\n")


def write_all(base_dir: str | os.PathLike[str], chains: ChainMap) -> None:
    """Write the watermarks of every chain."""
    for chain_id, data in chains.items():
        write_watermark_data(base_dir, data, chain_id)


class FileWatermark(InMemory):
    """In-memory watermarks written through to ``<base_dir>/watermark_v2``.

    Data in the older layouts is migrated on first use.
    """

    def __init__(self, base_dir: str | os.PathLike[str]) -> None:
        super().__init__()
        self.base_dir = Path(base_dir)
        chains = try_load(self.base_dir)
        if chains is not None:
            for exists, old_dir in (
                (check_v0_exists, V0_WATERMARK_DIR),
                (check_v1_exists, V1_WATERMARK_DIR),
            ):
                if exists(self.base_dir):
                    log.warning(
                        "Watermark storage directory %s is deprecated and must be removed manually",
                        old_dir,
                    )
        else:
            for loader, old_dir in ((try_v1, V1_WATERMARK_DIR), (try_v0, V0_WATERMARK_DIR)):
                chains = loader(self.base_dir)
                if chains is not None:
                    write_all(self.base_dir, chains)
                    log.info(
                        "Watermark data migrated successfully to %s. "
                        "Old watermark storage directory %s can now be safely removed",
                        WATERMARK_DIR,
                        old_dir,
                    )
                    break
        self.chains = chains if chains is not None else {}

    def is_safe_to_sign(self, pkh: PublicKeyHash, req: Any, digest: bytes) -> None:
        """Check the request, then persist the chain's watermarks."""
        if not isinstance(req, WatermarkedRequest):
            return
        with self.lock:
            self._check_unlocked(pkh, req, digest)
            chain_id = bytes(req.chain_id)
            write_watermark_data(self.base_dir, self.chains[chain_id], chain_id)


register_watermark("file", lambda conf, global_config: FileWatermark(global_config.base_dir))