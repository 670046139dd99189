"""
Unit tests for ArchiveScanner
"""

import logging

import pytest

from car_reconciliation.archive import ArchiveScanner
from car_reconciliation.exceptions import ArchiveFormatError, ArchiveReadError


class TestArchiveScanner:
    """Test path resolution and block enumeration"""

    def test_resolve_joins_archive_dir(self, tmp_path):
        scanner = ArchiveScanner(tmp_path)

        assert scanner.resolve("shard/a.car") == tmp_path / "shard" / "a.car"

    def test_resolve_keeps_absolute_paths_inside_archive_dir(self, tmp_path):
        scanner = ArchiveScanner(tmp_path / "cars")

        assert scanner.resolve("/etc/x.car") == tmp_path / "cars" / "etc" / "x.car"

    def test_scan_absolute_storage_path(self, tmp_path, car_builder):
        car_builder.write(tmp_path, "shard/a.car", [b"one"])

        blocks = [block for _, block in ArchiveScanner(tmp_path).scan("/shard/a.car")]

        assert blocks == [b"one"]

    def test_scan_yields_blocks(self, tmp_path, car_builder):
        car_builder.write(tmp_path, "nested/a.car", [b"one", b"two"])
        scanner = ArchiveScanner(tmp_path)

        blocks = [block for _, block in scanner.scan("nested/a.car")]

        assert blocks == [b"one", b"two"]

    def test_scan_v2(self, tmp_path, car_builder):
        car_builder.write(tmp_path, "v2.car", [b"payload"], version=2)

        assert [block for _, block in ArchiveScanner(tmp_path).scan("v2.car")] == [b"payload"]

    def test_missing_file_is_empty_with_warning(self, tmp_path, caplog):
        scanner = ArchiveScanner(tmp_path)

        with caplog.at_level(logging.WARNING):
            blocks = list(scanner.scan("gone.car"))

        assert blocks == []
        assert "Can't find gone.car" in caplog.text

    def test_malformed_file_raises(self, tmp_path):
        (tmp_path / "bad.car").write_bytes(b"not a car at all")

        with pytest.raises(ArchiveFormatError):
            list(ArchiveScanner(tmp_path).scan("bad.car"))

    def test_unreadable_path_raises(self, tmp_path):
        (tmp_path / "dir.car").mkdir()

        with pytest.raises(ArchiveReadError, match="open failed"):
            list(ArchiveScanner(tmp_path).scan("dir.car"))

    def test_custom_opener(self, tmp_path, car_builder):
        import io

        opened = []
        data = car_builder.v1([b"in-memory"])

        def opener(path):
            opened.append(path)
            return io.BytesIO(data)

        scanner = ArchiveScanner(tmp_path, opener=opener)

        assert [block for _, block in scanner.scan("x.car")] == [b"in-memory"]
        assert opened == [tmp_path / "x.car"]

    def test_stream_closed_after_early_exit(self, tmp_path, car_builder):
        import io

        stream = io.BytesIO(car_builder.v1([b"a", b"b", b"c"]))
        scanner = ArchiveScanner(tmp_path, opener=lambda path: stream)

        blocks = scanner.scan("x.car")
        next(blocks)
        blocks.close()

        assert stream.closed
