import math

import pytest

from reviewscope.embeddings.vectors import (
    bytes_to_float32,
    cosine_similarity,
    decode_vector,
    encode_vector,
    float32_to_bytes,
)


def test_sqlite_encoding_is_packed_float32():
    raw = encode_vector([0.5, -1.25, 3.0], "sqlite")
    assert isinstance(raw, bytes)
    assert len(raw) == 12
    assert decode_vector(raw, "sqlite") == [0.5, -1.25, 3.0]


def test_sqlite_round_trip_is_single_precision():
    vec = [0.1, 0.2, -0.3333333]
    decoded = decode_vector(encode_vector(vec, "sqlite"), "sqlite")
    assert decoded == pytest.approx(vec, rel=1e-6)


def test_postgres_encoding_is_array_literal():
    raw = encode_vector([0.5, -1.25, 3], "postgresql")
    assert raw == "[0.5,-1.25,3.0]"
    assert decode_vector(raw, "postgresql") == [0.5, -1.25, 3.0]


def test_decode_accepts_memoryview():
    raw = memoryview(float32_to_bytes([1.0, 2.0]))
    assert decode_vector(raw, "sqlite") == [1.0, 2.0]


def test_bad_packed_length():
    with pytest.raises(ValueError):
        bytes_to_float32(b"\x00\x00\x00")


def test_cosine_basic_cases():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([3, 4], [6, 8]) == pytest.approx(1.0)


def test_cosine_zero_vector():
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
    assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0


def test_cosine_length_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])


def test_cosine_is_bounded():
    vectors = [
        [0.1, 0.7, -0.2],
        [1e-8, 3e8, -5.0],
        [0.3333333, 0.3333333, 0.3333333],
        [-2.0, -2.0, 1e-3],
    ]
    for a in vectors:
        for b in vectors:
            sim = cosine_similarity(a, b)
            assert -1.0 <= sim <= 1.0
            assert not math.isnan(sim)
