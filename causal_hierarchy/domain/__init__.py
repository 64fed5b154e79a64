"""Serialization helpers shared by provenance hashing and artifact writers."""

from .serialization import StrictForensicEncoder, canonical_dumps, pretty_dumps

__all__ = ["StrictForensicEncoder", "canonical_dumps", "pretty_dumps"]
