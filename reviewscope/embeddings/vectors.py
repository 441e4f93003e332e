"""Vector storage codec and cosine similarity."""

import json
import math
import struct
from typing import Sequence, Union

POSTGRES_DIALECT = "postgresql"


def float32_to_bytes(vec: Sequence[float]) -> bytes:
    """Pack a vector as little-endian float32."""
    return struct.pack(f"<{len(vec)}f", *vec)


def bytes_to_float32(raw: bytes) -> list[float]:
    """Unpack little-endian float32 bytes into a list of floats."""
    if len(raw) % 4:
        raise ValueError(f"Packed vector length {len(raw)} is not a multiple of 4")
    return list(struct.unpack(f"<{len(raw) // 4}f", raw))


def encode_vector(vec: Sequence[float], dialect: str) -> Union[bytes, str]:
    """Convert a vector to the storage format for the given dialect.

    PostgreSQL stores a textual array literal (``[0.1,0.2]``); every other
    backend stores packed float32 bytes.

    Args:
        vec: Vector to encode
        dialect: SQLAlchemy dialect name (``sqlite``, ``postgresql``)

    Returns:
        Storage-ready value
    """
    if dialect == POSTGRES_DIALECT:
        return "[" + ",".join(repr(float(x)) for x in vec) + "]"
    return float32_to_bytes(vec)


def decode_vector(raw: Union[bytes, bytearray, memoryview, str], dialect: str) -> list[float]:
    """Convert a stored vector back to a list of floats.

    Args:
        raw: Value read from the database
        dialect: SQLAlchemy dialect name

    Returns:
        Decoded vector
    """
    if dialect == POSTGRES_DIALECT:
        text = raw if isinstance(raw, str) else bytes(raw).decode("utf-8")
        return [float(x) for x in json.loads(text)]
    if isinstance(raw, str):
        raise TypeError("Expected packed bytes for a binary vector column")
    return bytes_to_float32(bytes(raw))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denom == 0:
        return 0.0
    # Clamp float rounding drift
    return max(-1.0, min(1.0, dot / denom))
