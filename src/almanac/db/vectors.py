"""Embedding BLOB codec: float32 components, little-endian, 4 bytes each."""

from __future__ import annotations

import struct
from collections.abc import Sequence

_COMPONENT_BYTES = 4


def encode_vector(vector: Sequence[float]) -> bytes:
    """Serialize *vector* as packed little-endian float32."""
    return struct.pack(f"<{len(vector)}f", *vector)


def decode_vector(blob: bytes, dimensions: int) -> list[float]:
    """Deserialize a stored vector of *dimensions* components.

    The component count comes from *dimensions*, not from ``len(blob)``:
    extra trailing bytes are ignored and a truncated blob is zero-padded
    back to full length.
    """
    if dimensions <= 0:
        return []
    available = min(dimensions, len(blob) // _COMPONENT_BYTES)
    values = list(struct.unpack_from(f"<{available}f", blob)) if available else []
    values.extend([0.0] * (dimensions - available))
    return values
