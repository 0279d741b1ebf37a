"""
Vector storage module.

Exports:
    VectorStore: Id-addressed (text, vector) storage over the embedded datastore
    StoredChunk: A persisted chunk with its decoded vector
    encode_vector / decode_vector: Binary vector codec
"""

from embedsearch.store.codec import decode_vector, encode_vector
from embedsearch.store.vector_store import StoredChunk, VectorStore

__all__ = [
    "VectorStore",
    "StoredChunk",
    "encode_vector",
    "decode_vector",
]
