"""
Minimal ZIP archive writer.

Builds a ZIP container from in-memory entries using the store method
(no compression), which any ZIP reader can open. Output is fully
deterministic: every entry carries the same fixed DOS timestamp, so
identical entries always produce identical bytes.

Layout:
    [local header + data] * n, central directory, end-of-central-directory
"""

import struct
from typing import List, Sequence, Tuple

from ..errors import AdapterError

LOCAL_HEADER_SIGNATURE = 0x04034B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIR_SIGNATURE = 0x06054B50

VERSION = 20
METHOD_STORE = 0
# General purpose flag bit 11: file name is UTF-8
FLAG_UTF8 = 0x0800

# 1980-01-01 00:00:00, the earliest DOS date
DOS_TIME = 0
DOS_DATE = (0 << 9) | (1 << 5) | 1

MAX_ENTRIES = 0xFFFF
MAX_OFFSET = 0xFFFFFFFF

_LOCAL_HEADER = struct.Struct('<IHHHHHIIIHH')
_CENTRAL_HEADER = struct.Struct('<IHHHHHHIIIHHHHHII')
_END_OF_CENTRAL_DIR = struct.Struct('<IHHHHIIH')


def _make_crc_table() -> List[int]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = 0xEDB88320 ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return table


CRC_TABLE = _make_crc_table()


def crc32(data: bytes) -> int:
    """Standard CRC-32 (reversed polynomial 0xEDB88320)."""
    crc = 0xFFFFFFFF
    table = CRC_TABLE
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def build_zip(entries: Sequence[Tuple[str, bytes]]) -> bytes:
    """
    Assemble a stored (uncompressed) ZIP archive.

    Args:
        entries: (archive path, content) pairs, written in order

    Returns:
        The complete archive bytes

    Raises:
        AdapterError: If the archive would exceed classic ZIP limits
    """
    if len(entries) > MAX_ENTRIES:
        raise AdapterError(f"Too many archive entries: {len(entries)}")

    parts: List[bytes] = []
    central_directory: List[bytes] = []
    offset = 0

    for path, content in entries:
        name = path.encode('utf-8')
        flags = 0 if path.isascii() else FLAG_UTF8
        crc = crc32(content)
        size = len(content)

        if size > MAX_OFFSET or offset > MAX_OFFSET:
            raise AdapterError(f"Archive entry too large for ZIP32: {path}")

        local_header = _LOCAL_HEADER.pack(
            LOCAL_HEADER_SIGNATURE,
            VERSION,          # version needed to extract
            flags,
            METHOD_STORE,
            DOS_TIME,
            DOS_DATE,
            crc,
            size,             # compressed size
            size,             # uncompressed size
            len(name),
            0,                # extra field length
        ) + name

        central_directory.append(_CENTRAL_HEADER.pack(
            CENTRAL_HEADER_SIGNATURE,
            VERSION,          # version made by
            VERSION,          # version needed to extract
            flags,
            METHOD_STORE,
            DOS_TIME,
            DOS_DATE,
            crc,
            size,
            size,
            len(name),
            0,                # extra field length
            0,                # comment length
            0,                # disk number start
            0,                # internal attributes
            0,                # external attributes
            offset,           # local header offset
        ) + name)

        parts.append(local_header)
        parts.append(content)
        offset += len(local_header) + size

    directory = b''.join(central_directory)
    if offset > MAX_OFFSET or len(directory) > MAX_OFFSET:
        raise AdapterError("Archive too large for ZIP32")

    parts.append(directory)
    parts.append(_END_OF_CENTRAL_DIR.pack(
        END_OF_CENTRAL_DIR_SIGNATURE,
        0,                    # this disk
        0,                    # disk with central directory
        len(entries),
        len(entries),
        len(directory),
        offset,               # central directory offset
        0,                    # comment length
    ))

    return b''.join(parts)
