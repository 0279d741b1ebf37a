"""
EmbedSearch Vector Codec

On-disk layout of an embedding blob:

    <uint32 little-endian: dimension> <dimension × float64 little-endian IEEE754>

Decoding is byte-exact: ``decode_vector(encode_vector(v))`` returns the same
float64 values bit for bit.
"""

import struct
from collections.abc import Sequence

import numpy as np

from embedsearch.errors import StorageError

_HEADER = struct.Struct("<I")
_FLOAT64_LE = np.dtype("<f8")


def encode_vector(values: Sequence[float]) -> bytes:
    """Serialize a vector to its self-describing binary blob."""
    array = np.asarray(values, dtype=_FLOAT64_LE)
    if array.ndim != 1:
        raise ValueError(f"vector must be one-dimensional, got shape {array.shape}")
    return _HEADER.pack(array.shape[0]) + array.tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    """
    Deserialize a blob written by ``encode_vector``.

    Raises:
        StorageError: If the blob is truncated or its length disagrees
            with the dimension header.
    """
    if len(blob) < _HEADER.size:
        raise StorageError(f"corrupt vector blob: {len(blob)} bytes is shorter than header")

    (dimension,) = _HEADER.unpack_from(blob)
    expected = _HEADER.size + dimension * _FLOAT64_LE.itemsize
    if len(blob) != expected:
        raise StorageError(
            f"corrupt vector blob: header says {dimension} values "
            f"({expected} bytes) but blob has {len(blob)} bytes"
        )

    return np.frombuffer(blob, dtype=_FLOAT64_LE, count=dimension, offset=_HEADER.size)
