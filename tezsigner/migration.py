"""Reading of watermark data kept in the older storage layouts."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .keys import parse_chain_id, parse_public_key_hash
from .request import Watermark
from .watermark import ChainMap, DelegateMap

V0_WATERMARK_DIR = "watermark"
V1_WATERMARK_DIR = "watermark_v1"

_V1_ORDER = {0: "block", 1: "preendorsement"}


def _load_chains(
    directory: str | os.PathLike[str], convert: Callable[[Any], DelegateMap]
) -> ChainMap | None:
    """Load every ``<chain id>.json`` file in ``directory``; None if it is absent."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except FileNotFoundError:
        return None
    out: ChainMap = {}
    for entry in entries:
        if not entry.is_file(follow_symlinks=False) or not entry.name.endswith(".json"):
            continue
        chain_id = parse_chain_id(entry.name[:-5])
        with open(entry.path, encoding="utf-8") as fd:
            out[chain_id] = convert(json.load(fd))
    return out


def _exists(path: Path) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    return True


def check_v0_exists(base_dir: str | os.PathLike[str]) -> bool:
    """Return True if the first storage layout is present."""
    return _exists(Path(base_dir) / V0_WATERMARK_DIR)


def check_v1_exists(base_dir: str | os.PathLike[str]) -> bool:
    """Return True if the second storage layout is present."""
    return _exists(Path(base_dir) / V1_WATERMARK_DIR)


def _from_v0(data: Any) -> DelegateMap:
    out: DelegateMap = {}
    for kind, delegates in (data or {}).items():
        for key, value in (delegates or {}).items():
            if value is None:
                continue
            out.setdefault(parse_public_key_hash(key), {})[kind] = Watermark.from_json(value)
    return out


def _from_v1(data: Any) -> DelegateMap:
    out: DelegateMap = {}
    for key, value in (data or {}).items():
        if value is None:
            continue
        kind = _V1_ORDER.get(int(value.get("order", 0)), "endorsement")
        wm = Watermark.from_json(
            {
                "level": value.get("level", 0),
                "round": value.get("round") or 0,
                "hash": value.get("hash"),
            }
        )
        out[parse_public_key_hash(key)] = {kind: wm}
    return out


def try_v0(base_dir: str | os.PathLike[str]) -> ChainMap | None:
    """Load first-layout data (kind -> delegate); None if absent."""
    return _load_chains(Path(base_dir) / V0_WATERMARK_DIR, _from_v0)


def try_v1(base_dir: str | os.PathLike[str]) -> ChainMap | None:
    """Load second-layout data (delegate -> watermark with order); None if absent."""
    return _load_chains(Path(base_dir) / V1_WATERMARK_DIR, _from_v1)