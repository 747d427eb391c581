# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec - compression of snapshot artifacts.
"""

from etcdbackup.archive.codec import (
    ArchiveCodec,
    codec_for,
    is_compressed,
)

__all__ = [
    "ArchiveCodec",
    "codec_for",
    "is_compressed",
]
