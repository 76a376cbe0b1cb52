import json

import pytest

from tezsigner.keys import KeyKind, PublicKeyHash, encode_chain_id, b58check_encode
from tezsigner.migration import check_v0_exists, check_v1_exists, try_v0, try_v1
from tezsigner.request import BLOCK_PAYLOAD_HASH_PREFIX, Watermark

CHAIN = bytes(4)
PKH_A = PublicKeyHash(KeyKind.ED25519, bytes(20))
PKH_B = PublicKeyHash(KeyKind.SECP256K1, bytes([7]) * 20)
HASH = bytes([9]) * 32
HASH_B58 = b58check_encode(BLOCK_PAYLOAD_HASH_PREFIX, HASH)


def write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_missing_directories(tmp_path):
    assert try_v0(tmp_path) is None
    assert try_v1(tmp_path) is None
    assert check_v0_exists(tmp_path) is False
    assert check_v1_exists(tmp_path) is False


def test_exists_checks(tmp_path):
    (tmp_path / "watermark").mkdir()
    assert check_v0_exists(tmp_path) is True
    assert check_v1_exists(tmp_path) is False
    (tmp_path / "watermark_v1").mkdir()
    assert check_v1_exists(tmp_path) is True


def test_v0_regroups_by_delegate(tmp_path):
    data = {
        "block": {PKH_A.to_b58(): {"level": 10, "round": 1, "hash": HASH_B58}},
        "endorsement": {
            PKH_A.to_b58(): {"level": 11, "round": 0, "hash": None},
            PKH_B.to_b58(): {"level": 12, "round": 3, "hash": None},
        },
    }
    write(tmp_path / "watermark" / f"{encode_chain_id(CHAIN)}.json", data)
    chains = try_v0(tmp_path)
    assert chains == {
        CHAIN: {
            PKH_A: {
                "block": Watermark(10, 1, HASH),
                "endorsement": Watermark(11, 0, None),
            },
            PKH_B: {"endorsement": Watermark(12, 3, None)},
        }
    }


@pytest.mark.parametrize(
    "order,kind", [(0, "block"), (1, "preendorsement"), (2, "endorsement"), (5, "endorsement")]
)
def test_v1_order_to_kind(tmp_path, order, kind):
    data = {PKH_A.to_b58(): {"level": 20, "round": 2, "order": order, "hash": HASH_B58}}
    write(tmp_path / "watermark_v1" / f"{encode_chain_id(CHAIN)}.json", data)
    chains = try_v1(tmp_path)
    assert chains == {CHAIN: {PKH_A: {kind: Watermark(20, 2, HASH)}}}


def test_v1_missing_round_and_hash(tmp_path):
    data = {PKH_B.to_b58(): {"level": 30, "round": None, "order": 0, "hash": None}}
    write(tmp_path / "watermark_v1" / f"{encode_chain_id(CHAIN)}.json", data)
    wm = try_v1(tmp_path)[CHAIN][PKH_B]["block"]
    assert (wm.level, wm.round, wm.hash) == (30, 0, None)


def test_non_json_entries_are_skipped(tmp_path):
    directory = tmp_path / "watermark_v1"
    directory.mkdir()
    (directory / "notes.txt").write_text("ignored", encoding="utf-8")
    (directory / "sub.json").mkdir()
    assert try_v1(tmp_path) == {}


def test_invalid_chain_file_name(tmp_path):
    write(tmp_path / "watermark" / "bogus.json", {})
    with pytest.raises(ValueError):
        try_v0(tmp_path)