# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec - file-level compression for snapshot artifacts.

gzip is the default so artifacts keep the .db.gz naming existing buckets
already hold; zstd (.zst) is available for faster, smaller archives.

compress() never leaves a partially-written archive as the only copy:
the archive is written to a temp file, decoded again and compared by
SHA-256 against the source, renamed into place, and only then is the
source removed.
"""

import asyncio
import gzip
import hashlib
import os
import shutil
import zlib
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterator

import structlog
import zstandard as zstd

from etcdbackup.config import CompressionCodec
from etcdbackup.exceptions import CodecError, CorruptArchiveError

logger = structlog.get_logger()

# Compression is CPU-bound; keep it off the event loop
_executor = ThreadPoolExecutor(max_workers=1)

EXTENSIONS = {
    CompressionCodec.GZIP: ".gz",
    CompressionCodec.ZSTD: ".zst",
}

DEFAULT_GZIP_LEVEL = 6
DEFAULT_ZSTD_LEVEL = 19

_CHUNK_SIZE = 1024 * 1024


def codec_for(path: Path | str) -> CompressionCodec | None:
    """Return the codec a file name's extension implies, or None."""
    name = str(path)
    for codec, ext in EXTENSIONS.items():
        if name.endswith(ext):
            return codec
    return None


def is_compressed(path: Path | str) -> bool:
    return codec_for(path) is not None


class ArchiveCodec:
    """Compress and decompress snapshot files in place."""

    def __init__(
        self,
        codec: CompressionCodec = CompressionCodec.GZIP,
        level: int | None = None,
    ):
        self.codec = codec
        if level is None:
            level = DEFAULT_ZSTD_LEVEL if codec is CompressionCodec.ZSTD else DEFAULT_GZIP_LEVEL
        self.level = level

    @property
    def extension(self) -> str:
        return EXTENSIONS[self.codec]

    async def compress(self, path: Path) -> Path:
        """
        Compress path to a sibling `<path><ext>` and remove the source.

        Args:
            path: Plain file to compress

        Returns:
            Path of the compressed file

        Raises:
            CodecError: If the archive cannot be written or fails its check;
                the source file is left untouched
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, self._compress_sync, Path(path))

    async def decompress(self, path: Path) -> Path:
        """
        Decompress path to its name without the codec extension.

        Args:
            path: File ending in .gz or .zst

        Returns:
            Path of the plain file

        Raises:
            CorruptArchiveError: If the compressed stream is malformed
            CodecError: For unknown extensions or I/O failures
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, _decompress_sync, Path(path))

    # ------------------------------------------------------------------
    # Synchronous workers
    # ------------------------------------------------------------------

    def _compress_sync(self, source: Path) -> Path:
        if not source.is_file():
            raise CodecError(
                f"Cannot compress missing file: {source}",
                details={"path": str(source)},
            )

        target = source.with_name(source.name + self.extension)
        temp = target.with_name(target.name + ".tmp")

        try:
            source_hash = _sha256(_iter_plain(source))

            with open(source, "rb") as src, open(temp, "wb") as dst:
                if self.codec is CompressionCodec.ZSTD:
                    cctx = zstd.ZstdCompressor(level=self.level)
                    cctx.copy_stream(src, dst, read_size=_CHUNK_SIZE)
                else:
                    with gzip.GzipFile(
                        filename=source.name,
                        mode="wb",
                        fileobj=dst,
                        compresslevel=self.level,
                    ) as gz:
                        shutil.copyfileobj(src, gz, _CHUNK_SIZE)
                dst.flush()
                os.fsync(dst.fileno())

            check_hash = _sha256(_iter_decoded(temp, self.codec))
            if check_hash != source_hash:
                raise CodecError(
                    "Compressed archive does not decode to the original",
                    details={"path": str(source)},
                )

            os.replace(temp, target)

        except CodecError:
            _discard(temp)
            raise
        except (OSError, EOFError, zlib.error, zstd.ZstdError) as e:
            _discard(temp)
            raise CodecError(
                f"Compression failed for {source}: {e}",
                details={"path": str(source)},
            ) from e

        original_size = source.stat().st_size
        source.unlink()
        compressed_size = target.stat().st_size

        logger.info(
            "snapshot_compressed",
            path=str(target),
            codec=self.codec.value,
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=(
                f"{original_size / compressed_size:.2f}x" if compressed_size else "n/a"
            ),
        )
        return target


def _decompress_sync(source: Path) -> Path:
    codec = codec_for(source)
    if codec is None:
        raise CodecError(
            f"Unknown archive extension: {source.name}",
            details={"path": str(source)},
        )
    if not source.is_file():
        raise CodecError(
            f"Cannot decompress missing file: {source}",
            details={"path": str(source)},
        )

    target = source.with_name(source.name[: -len(EXTENSIONS[codec])])
    temp = target.with_name(target.name + ".tmp")

    try:
        with open(temp, "wb") as dst:
            for chunk in _iter_decoded(source, codec):
                dst.write(chunk)
        os.replace(temp, target)
    except CorruptArchiveError:
        _discard(temp)
        raise
    except (gzip.BadGzipFile, EOFError, zlib.error, zstd.ZstdError) as e:
        _discard(temp)
        raise CorruptArchiveError(
            f"Malformed compressed stream: {source.name}: {e}",
            details={"path": str(source)},
        ) from e
    except OSError as e:
        _discard(temp)
        raise CodecError(
            f"Decompression failed for {source}: {e}",
            details={"path": str(source)},
        ) from e

    source.unlink()
    logger.info("snapshot_decompressed", path=str(target), size=target.stat().st_size)
    return target


def _iter_plain(path: Path) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


def _iter_decoded(path: Path, codec: CompressionCodec) -> Iterator[bytes]:
    """
    Yield the decoded content of a compressed file.

    Raises:
        CorruptArchiveError: If a zstd frame ends before its end marker
    """
    if codec is CompressionCodec.GZIP:
        with gzip.open(path, "rb") as f:
            while True:
                chunk = f.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        return

    # eof is only set once the frame end marker has been decoded
    dobj = zstd.ZstdDecompressor().decompressobj()
    for chunk in _iter_plain(path):
        out = dobj.decompress(chunk)
        if out:
            yield out
    if not dobj.eof:
        raise CorruptArchiveError(
            f"Truncated zstd frame: {path.name}",
            details={"path": str(path)},
        )


def _sha256(chunks: Iterator[bytes]) -> str:
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
