"""
Position Encoder
================

Versioned wire format for position updates.

Payload (UTF-8 JSON object, schema version 1)::

    {
      "v": 1,
      "id": "earth",
      "kind": "planet",
      "position": [x, y, z],
      "velocity": [vx, vy, vz],
      "timestamp": 1700000000000,   # ms since Unix epoch (simulated)
      "sim_time": 12.5              # elapsed simulated seconds
    }

Decoders ignore fields they do not know. A payload with a newer major
schema version is rejected.
"""

import json
import numpy as np
from dataclasses import dataclass
from typing import Tuple

from ..core.bodies import Body, BodyKind
from ..errors import DecodeError

SCHEMA_VERSION = 1

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True)
class PositionUpdate:
    """State of one body at one tick."""
    id: str
    kind: BodyKind
    position: Vector3
    velocity: Vector3
    timestamp: int
    sim_time: float

    @classmethod
    def from_body(cls, body: Body, timestamp: int, sim_time: float) -> 'PositionUpdate':
        return cls(
            id=body.id,
            kind=body.kind,
            position=_as_tuple(body.position),
            velocity=_as_tuple(body.velocity),
            timestamp=int(timestamp),
            sim_time=float(sim_time),
        )

    def to_dict(self) -> dict:
        return {
            'v': SCHEMA_VERSION,
            'id': self.id,
            'kind': self.kind.value,
            'position': list(self.position),
            'velocity': list(self.velocity),
            'timestamp': self.timestamp,
            'sim_time': self.sim_time,
        }


def _as_tuple(v) -> Vector3:
    arr = np.asarray(v, dtype=float)
    return (float(arr[0]), float(arr[1]), float(arr[2]))


class PositionEncoder:
    """
    JSON codec for PositionUpdate.

    Keys are emitted in a fixed order so identical updates always encode
    to identical bytes.
    """

    def __init__(self):
        self.stats = {
            'encoded': 0,
            'decode_errors': 0,
        }

    def encode(self, update: PositionUpdate) -> bytes:
        self.stats['encoded'] += 1
        return json.dumps(update.to_dict(), separators=(',', ':'),
                          allow_nan=False).encode('utf-8')

    def decode(self, payload: bytes) -> PositionUpdate:
        """
        Decode a payload.

        Raises:
            DecodeError: If the payload is malformed or from a newer schema
        """
        try:
            return self._decode(payload)
        except DecodeError:
            self.stats['decode_errors'] += 1
            raise

    def _decode(self, payload: bytes) -> PositionUpdate:
        try:
            data = json.loads(payload.decode('utf-8') if isinstance(payload, bytes) else payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Payload is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError("Payload must be a JSON object")

        version = data.get('v')
        if not isinstance(version, int) or isinstance(version, bool):
            raise DecodeError(f"Missing or invalid schema version: {version!r}")
        if version > SCHEMA_VERSION:
            raise DecodeError(f"Unsupported schema version {version} (max {SCHEMA_VERSION})")

        try:
            kind = BodyKind(data['kind'])
            update = PositionUpdate(
                id=str(data['id']),
                kind=kind,
                position=_vector_field(data, 'position'),
                velocity=_vector_field(data, 'velocity'),
                timestamp=int(data['timestamp']),
                sim_time=float(data.get('sim_time', 0.0)),
            )
        except KeyError as e:
            raise DecodeError(f"Missing field: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Invalid field value: {e}") from e
        return update


def _vector_field(data: dict, key: str) -> Vector3:
    value = data[key]
    if not isinstance(value, list) or len(value) != 3:
        raise ValueError(f"{key} must be a list of 3 numbers")
    return (float(value[0]), float(value[1]), float(value[2]))
