from dataclasses import dataclass

import pytest

from tezsigner.request import Watermark, WatermarkedRequest, new_watermark


@dataclass
class DummyMsg:
    level: int
    round: int
    kind: str = "dummy"
    chain_id: bytes = bytes(4)


def digest(first):
    return bytes([first]) + bytes(31)


PLAIN = Watermark(level=1, round=1)
HASHED = Watermark(level=1, round=1, hash=digest(0))


@pytest.mark.parametrize(
    "stored, level, round_, first, expected",
    [
        (PLAIN, 2, 0, 0, True),
        (PLAIN, 1, 2, 0, True),
        (PLAIN, 1, 1, 0, False),
        (PLAIN, 1, 0, 0, False),
        (PLAIN, 0, 2, 0, False),
        (HASHED, 2, 0, 1, True),
        (HASHED, 1, 2, 1, True),
        (HASHED, 1, 1, 0, True),
        (HASHED, 1, 0, 1, False),
        (HASHED, 0, 2, 1, False),
        (HASHED, 1, 1, 1, False),
    ],
)
def test_validate(stored, level, round_, first, expected):
    wm = new_watermark(DummyMsg(level=level, round=round_), digest(first))
    assert wm.validate(stored) is expected


def test_new_watermark_fields():
    msg = DummyMsg(level=5, round=3)
    assert isinstance(msg, WatermarkedRequest)
    wm = new_watermark(msg, digest(9))
    assert (wm.level, wm.round, wm.hash) == (5, 3, digest(9))


def test_json_round_trip():
    wm = Watermark(level=5, round=2, hash=digest(7))
    data = wm.to_json()
    assert data["hash"].startswith("vh")
    assert Watermark.from_json(data) == wm


def test_json_round_trip_without_hash():
    wm = Watermark(level=3, round=0)
    data = wm.to_json()
    assert data["hash"] is None
    assert Watermark.from_json(data) == wm


def test_from_json_rejects_bad_hash():
    with pytest.raises(ValueError):
        Watermark.from_json({"level": 1, "round": 0, "hash": "NetXdQprcVkpaWU"})