"""Evaluator line protocol: markers, keys, decoding and encoding."""

from .decoder import DecodedRecord, DecoderState, ProtocolDecoder
from .encoder import encode_failure, encode_recipe
from ..keys import (
    ARCH_ANY,
    CHECKSUM_ALGORITHMS,
    DEPENDENCY_CATEGORIES,
    MARKERS,
    Marker,
    checksum_key,
)

__all__ = [
    "ARCH_ANY",
    "CHECKSUM_ALGORITHMS",
    "DEPENDENCY_CATEGORIES",
    "MARKERS",
    "DecodedRecord",
    "DecoderState",
    "Marker",
    "ProtocolDecoder",
    "checksum_key",
    "encode_failure",
    "encode_recipe",
]
