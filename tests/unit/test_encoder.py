import json

import pytest

from solarsim.core.bodies import BodyKind, Ship
from solarsim.errors import DecodeError
from solarsim.streaming.encoder import SCHEMA_VERSION, PositionEncoder, PositionUpdate


def _update():
    ship = Ship(id="ship-1", position=[1.0, 2.0, 3.0], velocity=[0.5, 0.0, -0.5])
    return PositionUpdate.from_body(ship, timestamp=1_700_000_000_000, sim_time=12.5)


def test_encode_then_decode():
    encoder = PositionEncoder()
    update = _update()
    payload = encoder.encode(update)

    data = json.loads(payload)
    assert data["v"] == SCHEMA_VERSION
    assert data["kind"] == "ship"
    assert data["timestamp"] == 1_700_000_000_000

    assert encoder.decode(payload) == update


def test_encoding_is_deterministic():
    encoder = PositionEncoder()
    assert encoder.encode(_update()) == encoder.encode(_update())


def test_unknown_fields_ignored():
    data = _update().to_dict()
    data["colour"] = "red"
    decoded = PositionEncoder().decode(json.dumps(data).encode())
    assert decoded.id == "ship-1"
    assert decoded.kind is BodyKind.SHIP


@pytest.mark.parametrize("mutate", [
    lambda d: d.update(v=SCHEMA_VERSION + 1),
    lambda d: d.pop("v"),
    lambda d: d.pop("position"),
    lambda d: d.update(kind="comet"),
    lambda d: d.update(velocity=[1.0, 2.0]),
])
def test_malformed_payload_rejected(mutate):
    data = _update().to_dict()
    mutate(data)
    encoder = PositionEncoder()
    with pytest.raises(DecodeError):
        encoder.decode(json.dumps(data).encode())
    assert encoder.stats['decode_errors'] == 1


def test_non_json_rejected():
    with pytest.raises(DecodeError):
        PositionEncoder().decode(b"\xff\xfe not json")
    with pytest.raises(DecodeError):
        PositionEncoder().decode(b"[1, 2, 3]")
