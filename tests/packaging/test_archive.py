"""Tests for the store-only archive codec."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from gamepipe.packaging import (
    ArchiveFormatError,
    UnsupportedCompressionError,
    extract_archive,
    parse_archive,
    read_entries,
    write_archive,
)


def _tree(root: Path) -> list[str]:
    files = {
        "b/second.txt": "second",
        "a.txt": "first",
        "nested/deep/third.json": '{"ok": true}',
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return list(files)


def test_write_archive_is_byte_identical_across_runs(tmp_path: Path) -> None:
    root = tmp_path / "src"
    names = _tree(root)

    first = write_archive(tmp_path / "one.zip", root, names).read_bytes()
    second = write_archive(tmp_path / "two.zip", root, reversed(names)).read_bytes()

    assert first == second


def test_entries_round_trip_in_sorted_order(tmp_path: Path) -> None:
    root = tmp_path / "src"
    names = _tree(root)
    archive = write_archive(tmp_path / "out.zip", root, names)

    entries = read_entries(archive)

    assert [entry.name for entry in entries] == ["a.txt", "b/second.txt", "nested/deep/third.json"]
    assert entries[1].data == b"second"


def test_archive_is_readable_by_standard_zip_tools(tmp_path: Path) -> None:
    root = tmp_path / "src"
    archive = write_archive(tmp_path / "out.zip", root, _tree(root))

    with zipfile.ZipFile(archive) as handle:
        assert handle.testzip() is None
        infos = handle.infolist()
    assert {info.compress_type for info in infos} == {zipfile.ZIP_STORED}
    assert {info.date_time for info in infos} == {(1980, 1, 1, 0, 0, 0)}


def test_non_ascii_names_are_flagged_as_utf8(tmp_path: Path) -> None:
    root = tmp_path / "src"
    (root / "modules").mkdir(parents=True)
    (root / "modules" / "módulo.ts").write_text("export const ñ = 1;\n", encoding="utf-8")
    archive = write_archive(tmp_path / "out.zip", root, ["modules/módulo.ts"])

    with zipfile.ZipFile(archive) as handle:
        info = handle.infolist()[0]
    assert info.filename == "modules/módulo.ts"
    assert info.flag_bits & 0x0800
    assert [entry.name for entry in read_entries(archive)] == ["modules/módulo.ts"]


def test_deflated_entries_are_rejected(tmp_path: Path) -> None:
    archive = tmp_path / "deflated.zip"
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as handle:
        handle.writestr("a.txt", "compressible " * 50)

    with pytest.raises(UnsupportedCompressionError):
        read_entries(archive)


@pytest.mark.parametrize("payload", [b"", b"not a zip at all", b"PK\x05\x06" + b"\x00" * 10])
def test_malformed_buffers_raise_format_errors(payload: bytes) -> None:
    with pytest.raises(ArchiveFormatError):
        parse_archive(payload)


def test_truncated_archive_raises_format_error(tmp_path: Path) -> None:
    root = tmp_path / "src"
    data = write_archive(tmp_path / "out.zip", root, _tree(root)).read_bytes()
    eocd = data.rfind(b"PK\x05\x06")

    with pytest.raises(ArchiveFormatError):
        parse_archive(data[:40] + data[eocd:])


def test_extract_archive_restores_the_tree(tmp_path: Path) -> None:
    root = tmp_path / "src"
    archive = write_archive(tmp_path / "out.zip", root, _tree(root))

    names = extract_archive(archive, tmp_path / "restored")

    assert names == ["a.txt", "b/second.txt", "nested/deep/third.json"]
    assert (tmp_path / "restored" / "nested/deep/third.json").read_text(encoding="utf-8") == '{"ok": true}'


def test_extract_archive_rejects_traversal_before_writing(tmp_path: Path) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_STORED) as handle:
        handle.writestr("good.txt", "fine")
        handle.writestr("../evil.txt", "nope")
    target = tmp_path / "target"

    with pytest.raises(ArchiveFormatError):
        extract_archive(archive, target)

    assert not (tmp_path / "evil.txt").exists()
    assert not (target / "good.txt").exists()
