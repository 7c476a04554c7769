"""Binary container and compression for persisted search indexes.

The exported index is packed with msgpack and then piped through the configured codec in
fixed-size slices, so the compressor never holds a second full copy of the container. Brotli
is compressed as a whole buffer.
"""

from __future__ import annotations

import io
import time
import zlib
from collections.abc import Iterator
from typing import Literal

import brotli
import msgpack
import zstandard

from ...exceptions import SerializationError
from ...utils.logging import get_logger
from .search_index import SearchIndex

__all__ = ["COMPRESSIONS", "Compression", "deserialize", "serialize"]

LOGGER = get_logger(__name__)

Compression = Literal["none", "gzip", "zstd", "brotli"]
COMPRESSIONS: tuple[str, ...] = ("none", "gzip", "zstd", "brotli")

DEFAULT_CHUNK_BYTES = 1024 * 1024
_GZIP_WBITS = 31


def _mb(size: int) -> float:
    return size / (1024 * 1024)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _slices(data: bytes, chunk_bytes: int) -> Iterator[memoryview]:
    view = memoryview(data)
    for offset in range(0, len(view), chunk_bytes):
        yield view[offset : offset + chunk_bytes]


def _check_codec(compression: str) -> None:
    if compression not in COMPRESSIONS:
        raise SerializationError(
            f"Unsupported compression '{compression}'. Expected one of: {', '.join(COMPRESSIONS)}"
        )


# ---------------------------------------------------------------------- #
# Encode
# ---------------------------------------------------------------------- #
def serialize(
    index: SearchIndex,
    compression: str = "brotli",
    *,
    chunk_bytes: int = DEFAULT_CHUNK_BYTES,
) -> bytes:
    """Export, pack and compress ``index``."""
    _check_codec(compression)
    if chunk_bytes <= 0:
        raise SerializationError("chunk_bytes must be positive.")

    started = time.perf_counter()
    exported = index.export()
    LOGGER.info(
        "Exported index with %d documents in %.0fms.", index.count(), _elapsed_ms(started)
    )

    started = time.perf_counter()
    packed = msgpack.packb(exported, use_bin_type=True)
    del exported
    LOGGER.info("Encoded index: %.2fMB in %.0fms.", _mb(len(packed)), _elapsed_ms(started))

    started = time.perf_counter()
    compressed = _compress(packed, compression, chunk_bytes)
    LOGGER.info(
        "Compressed with %s: %.2fMB -> %.2fMB in %.0fms.",
        compression,
        _mb(len(packed)),
        _mb(len(compressed)),
        _elapsed_ms(started),
    )
    return compressed


def _compress(data: bytes, compression: str, chunk_bytes: int) -> bytes:
    if compression == "none":
        return data

    if compression == "gzip":
        compressor = zlib.compressobj(wbits=_GZIP_WBITS)
        sink = io.BytesIO()
        for piece in _slices(data, chunk_bytes):
            sink.write(compressor.compress(piece))
        sink.write(compressor.flush())
        return sink.getvalue()

    if compression == "zstd":
        sink = io.BytesIO()
        writer = zstandard.ZstdCompressor().stream_writer(sink, closefd=False)
        with writer:
            for piece in _slices(data, chunk_bytes):
                writer.write(piece)
        return sink.getvalue()

    return brotli.compress(data)


# ---------------------------------------------------------------------- #
# Decode
# ---------------------------------------------------------------------- #
def deserialize(
    data: bytes,
    compression: str = "brotli",
    *,
    chunk_bytes: int = DEFAULT_CHUNK_BYTES,
) -> SearchIndex:
    """Inverse of :func:`serialize`.

    Raises:
        SerializationError: for an unknown codec or a stream that cannot be decoded.
    """
    _check_codec(compression)

    started = time.perf_counter()
    try:
        packed = _decompress(data, compression, chunk_bytes)
    except (zlib.error, zstandard.ZstdError, brotli.error) as exc:
        raise SerializationError(f"Failed to decompress {compression} index: {exc}") from exc
    LOGGER.info(
        "Decompressed %s: %.2fMB -> %.2fMB in %.0fms.",
        compression,
        _mb(len(data)),
        _mb(len(packed)),
        _elapsed_ms(started),
    )

    started = time.perf_counter()
    try:
        exported = msgpack.unpackb(packed, raw=False)
        index = SearchIndex.load(exported)
    except (ValueError, TypeError, KeyError, msgpack.UnpackException) as exc:
        raise SerializationError(f"Failed to decode index container: {exc}") from exc
    LOGGER.info(
        "Decoded index with %d documents in %.0fms.", index.count(), _elapsed_ms(started)
    )
    return index


def _decompress(data: bytes, compression: str, chunk_bytes: int) -> bytes:
    if compression == "none":
        return data

    if compression == "gzip":
        decompressor = zlib.decompressobj(wbits=_GZIP_WBITS)
        sink = io.BytesIO()
        for piece in _slices(data, chunk_bytes):
            sink.write(decompressor.decompress(piece))
        sink.write(decompressor.flush())
        if not decompressor.eof:
            raise zlib.error("truncated gzip stream")
        return sink.getvalue()

    if compression == "zstd":
        sink = io.BytesIO()
        with zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data)) as reader:
            while True:
                piece = reader.read(chunk_bytes)
                if not piece:
                    break
                sink.write(piece)
        return sink.getvalue()

    return brotli.decompress(data)
