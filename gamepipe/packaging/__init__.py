"""Deterministic packaging: store-only archive codec and build export."""

from .archive import (
    ArchiveEntry,
    ArchiveError,
    ArchiveFile,
    ArchiveFormatError,
    UnsupportedCompressionError,
    extract_archive,
    hash_file,
    parse_archive,
    read_central_directory,
    read_entries,
    write_archive,
)
from .exporter import (
    BuildExporter,
    ExportError,
    ExportResult,
    export_build,
    list_files,
    write_checksum_manifest,
)

__all__ = [
    "ArchiveEntry",
    "ArchiveError",
    "ArchiveFile",
    "ArchiveFormatError",
    "BuildExporter",
    "ExportError",
    "ExportResult",
    "UnsupportedCompressionError",
    "export_build",
    "extract_archive",
    "hash_file",
    "list_files",
    "parse_archive",
    "read_central_directory",
    "read_entries",
    "write_archive",
    "write_checksum_manifest",
]
