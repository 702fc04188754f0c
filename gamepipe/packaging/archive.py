"""Store-only zip codec with reproducible output.

Only the uncompressed (store) method is read or written. Entries are written
in sorted path order with a fixed DOS timestamp and no extra fields, so the
same input tree always produces the same bytes.
"""

from __future__ import annotations

import hashlib
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from ..paths import is_safe_relative_path

EOCD_SIGNATURE = 0x06054B50
CENTRAL_SIGNATURE = 0x02014B50
LOCAL_SIGNATURE = 0x04034B50

METHOD_STORE = 0
FLAG_UTF8 = 0x0800
ZIP_VERSION = 20
DOS_TIME = 0
DOS_DATE = 33  # 1980-01-01

_EOCD_SIZE = 22
_CENTRAL_SIZE = 46
_LOCAL_SIZE = 30

_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_END_RECORD = struct.Struct("<IHHHHIIH")


class ArchiveError(RuntimeError):
    """Base class for archive read failures."""


class ArchiveFormatError(ArchiveError):
    """Raised when the archive structure is missing or corrupt."""


class UnsupportedCompressionError(ArchiveError):
    """Raised when an entry uses anything other than the store method."""


@dataclass(frozen=True)
class ArchiveEntry:
    """Central directory metadata for one entry."""

    name: str
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int


@dataclass(frozen=True)
class ArchiveFile:
    name: str
    data: bytes


def read_entries(path: Path) -> List[ArchiveFile]:
    """Read every file entry from the archive at ``path``."""
    return parse_archive(Path(path).read_bytes())


def parse_archive(buffer: bytes) -> List[ArchiveFile]:
    entries = read_central_directory(buffer)
    for entry in entries:
        if entry.compression_method != METHOD_STORE:
            raise UnsupportedCompressionError(
                f"Unsupported compression method {entry.compression_method} for {entry.name}"
            )
    return [
        ArchiveFile(name=entry.name, data=_entry_data(buffer, entry))
        for entry in entries
        if not entry.name.endswith("/")
    ]


def find_end_of_central_directory(buffer: bytes) -> int:
    for offset in range(len(buffer) - _EOCD_SIZE, -1, -1):
        if _u32(buffer, offset) == EOCD_SIGNATURE:
            return offset
    raise ArchiveFormatError("End of central directory not found")


def read_central_directory(buffer: bytes) -> List[ArchiveEntry]:
    eocd = find_end_of_central_directory(buffer)
    total_entries = _u16(buffer, eocd + 10)
    offset = _u32(buffer, eocd + 16)

    entries: List[ArchiveEntry] = []
    for _ in range(total_entries):
        if offset + _CENTRAL_SIZE > len(buffer) or _u32(buffer, offset) != CENTRAL_SIGNATURE:
            raise ArchiveFormatError(f"Central directory entry not found at offset {offset}")
        name_length = _u16(buffer, offset + 28)
        extra_length = _u16(buffer, offset + 30)
        comment_length = _u16(buffer, offset + 32)
        name_start = offset + _CENTRAL_SIZE
        name_end = name_start + name_length
        if name_end > len(buffer):
            raise ArchiveFormatError(f"Truncated central directory entry at offset {offset}")
        try:
            name = buffer[name_start:name_end].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ArchiveFormatError(f"Entry name is not UTF-8 at offset {offset}") from exc
        entries.append(
            ArchiveEntry(
                name=name,
                compression_method=_u16(buffer, offset + 10),
                compressed_size=_u32(buffer, offset + 20),
                uncompressed_size=_u32(buffer, offset + 24),
                local_header_offset=_u32(buffer, offset + 42),
            )
        )
        offset = name_end + extra_length + comment_length
    return entries


def _entry_data(buffer: bytes, entry: ArchiveEntry) -> bytes:
    local = entry.local_header_offset
    if local + _LOCAL_SIZE > len(buffer) or _u32(buffer, local) != LOCAL_SIGNATURE:
        raise ArchiveFormatError(f"Local header not found for {entry.name}")
    method = _u16(buffer, local + 8)
    if method != METHOD_STORE:
        raise UnsupportedCompressionError(
            f"Unsupported compression method {method} for {entry.name}"
        )
    name_length = _u16(buffer, local + 26)
    extra_length = _u16(buffer, local + 28)
    start = local + _LOCAL_SIZE + name_length + extra_length
    end = start + entry.compressed_size
    if end > len(buffer):
        raise ArchiveFormatError(f"Truncated data for {entry.name}")
    return bytes(buffer[start:end])


def write_archive(output_path: Path, root_dir: Path, files: Iterable[str]) -> Path:
    """Write ``files`` (paths relative to ``root_dir``) into a store-only archive."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    names = sorted({name.replace("\\", "/") for name in files})

    offset = 0
    central: List[bytes] = []
    with output_path.open("wb") as handle:
        for name in names:
            data = (Path(root_dir) / name).read_bytes()
            name_bytes = name.encode("utf-8")
            crc = zlib.crc32(data) & 0xFFFFFFFF
            local_header = _LOCAL_HEADER.pack(
                LOCAL_SIGNATURE,
                ZIP_VERSION,
                FLAG_UTF8,
                METHOD_STORE,
                DOS_TIME,
                DOS_DATE,
                crc,
                len(data),
                len(data),
                len(name_bytes),
                0,
            )
            central.append(
                _CENTRAL_HEADER.pack(
                    CENTRAL_SIGNATURE,
                    ZIP_VERSION,
                    ZIP_VERSION,
                    FLAG_UTF8,
                    METHOD_STORE,
                    DOS_TIME,
                    DOS_DATE,
                    crc,
                    len(data),
                    len(data),
                    len(name_bytes),
                    0,
                    0,
                    0,
                    0,
                    0,
                    offset,
                )
                + name_bytes
            )
            handle.write(local_header)
            handle.write(name_bytes)
            handle.write(data)
            offset += len(local_header) + len(name_bytes) + len(data)

        central_offset = offset
        for record in central:
            handle.write(record)
            offset += len(record)
        handle.write(
            _END_RECORD.pack(
                EOCD_SIGNATURE,
                0,
                0,
                len(central),
                len(central),
                offset - central_offset,
                central_offset,
                0,
            )
        )
    return output_path


def extract_archive(archive_path: Path, target_dir: Path) -> List[str]:
    """Materialise every entry of ``archive_path`` under ``target_dir``.

    All entry names are checked before anything is written.
    """
    files = read_entries(archive_path)
    target_root = Path(target_dir).resolve()
    planned = []
    for item in files:
        if not is_safe_relative_path(item.name):
            raise ArchiveFormatError(f"Unsafe entry name: {item.name}")
        target = (target_root / item.name).resolve()
        if not target.is_relative_to(target_root) or target == target_root:
            raise ArchiveFormatError(f"Unsafe entry name: {item.name}")
        planned.append((target, item))
    for target, item in planned:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(item.data)
    return [item.name for item in files]


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _u16(buffer: bytes, offset: int) -> int:
    try:
        return struct.unpack_from("<H", buffer, offset)[0]
    except struct.error as exc:
        raise ArchiveFormatError(f"Read past end of archive at offset {offset}") from exc


def _u32(buffer: bytes, offset: int) -> int:
    try:
        return struct.unpack_from("<I", buffer, offset)[0]
    except struct.error as exc:
        raise ArchiveFormatError(f"Read past end of archive at offset {offset}") from exc


__all__ = [
    "ArchiveEntry",
    "ArchiveError",
    "ArchiveFile",
    "ArchiveFormatError",
    "UnsupportedCompressionError",
    "extract_archive",
    "find_end_of_central_directory",
    "hash_bytes",
    "hash_file",
    "parse_archive",
    "read_central_directory",
    "read_entries",
    "write_archive",
]
