import subprocess

import pytest

from slabsight import utils
from slabsight.collector import ProcSourceCollector
from slabsight.records import MetaspaceReading, SourceKind
from slabsight.utils import (
    parse_metaspace_line,
    read_buddyinfo,
    read_key_value_file,
    read_metaspace,
    read_slabinfo,
    read_vmstat,
)

BOTH_LINE = ("Both: 2422 chunks, 40.63 MB capacity, 40.20 MB ( 99%) committed, "
             "39.67 MB ( 98%) used, 542.48 KB ( 1%) free, 0 bytes waste")

JCMD_OUTPUT = """12345:

       Usage:
  Non-class:      2.13 MB capacity,     2.06 MB ( 97%) committed,     1.98 MB ( 93%) used
      Class:    282.00 KB capacity,   264.00 KB ( 94%) committed,   254.00 KB ( 90%) used
       Both:   2422 chunks,    40.63 MB capacity,    40.20 MB ( 99%) committed,    39.67 MB ( 98%) used
"""


class TestProcReaders:
    def test_vmstat(self, proc_root):
        records = read_vmstat(str(proc_root))
        values = {r.key: r.value for r in records}
        assert values["slabs_scanned"] == 150
        assert values["pgalloc_normal"] == 990
        assert all(r.kind is SourceKind.VMSTAT for r in records)

    def test_missing_files_return_none(self, tmp_path):
        assert read_vmstat(str(tmp_path)) is None
        assert read_slabinfo(str(tmp_path)) is None
        assert read_buddyinfo(str(tmp_path)) is None
        assert read_key_value_file(str(tmp_path / "meminfo")) is None

    def test_empty_file_is_not_missing(self, tmp_path):
        (tmp_path / "vmstat").write_text("", encoding="utf-8")
        assert read_vmstat(str(tmp_path)) == []

    def test_slabinfo_skips_headers_and_malformed_rows(self, proc_root):
        records = read_slabinfo(str(proc_root))
        names = [r.name for r in records]
        assert names == ["kmalloc-4k", "kmalloc-1k", "dentry"]

        kmalloc_1k = records[1]
        assert kmalloc_1k.active_objects == 2048
        assert kmalloc_1k.total_objects == 2112
        assert kmalloc_1k.object_size == 1024
        assert kmalloc_1k.kind is SourceKind.SLABINFO

    def test_buddyinfo(self, proc_root):
        records = read_buddyinfo(str(proc_root))
        assert [r.zone for r in records] == ["DMA", "DMA32", "Normal"]

        normal = records[2]
        assert normal.node == 0
        assert len(normal.free_pages) == 11
        assert normal.free_at(2) == 20
        assert normal.free_at(3) == 10
        assert normal.free_at(11) == 0

    def test_buddyinfo_short_rows(self, tmp_path):
        (tmp_path / "buddyinfo").write_text(
            "Node 0, zone   Normal  7  6  5\n"
            "Node 0, zone   Movable  1  2\n"
            "Node x, zone   DMA  1  2  3  4\n",
            encoding="utf-8",
        )
        records = read_buddyinfo(str(tmp_path))
        assert len(records) == 1
        assert records[0].free_pages == (7, 6, 5) + (0,) * 8

    def test_skipped_rows_are_counted(self, proc_root, tmp_path):
        errors = []
        read_slabinfo(str(proc_root), errors)
        assert errors == [f"{proc_root / 'slabinfo'}: skipped 1 malformed row(s)"]

        (tmp_path / "buddyinfo").write_text(
            "Node 0, zone   Normal  7  6  5\n"
            "Node 0, zone   Movable  1  2\n"
            "Node x, zone   DMA  1  2  3  4\n",
            encoding="utf-8",
        )
        errors = []
        read_buddyinfo(str(tmp_path), errors)
        assert errors == [f"{tmp_path / 'buddyinfo'}: skipped 2 malformed row(s)"]

    def test_clean_files_report_nothing(self, proc_root):
        errors = []
        read_buddyinfo(str(proc_root), errors)
        assert errors == []


class TestMetaspace:
    def test_parse_summary_line(self):
        reading = parse_metaspace_line(BOTH_LINE)
        assert reading == MetaspaceReading(committed_kb=int(40.20 * 1024), used_kb=int(39.67 * 1024))

    def test_parse_requires_three_tokens(self):
        assert parse_metaspace_line("Both: 2422 chunks, 40.63 MB capacity") is None

    def test_read_metaspace(self, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout=JCMD_OUTPUT, stderr="")

        monkeypatch.setattr(utils.subprocess, "run", fake_run)
        reading = read_metaspace(12345, jcmd="/opt/jdk/bin/jcmd")

        assert calls == [["/opt/jdk/bin/jcmd", "12345", "VM.metaspace"]]
        assert reading.used_kb == int(39.67 * 1024)
        assert reading.committed_kb == int(40.20 * 1024)

    def test_nonzero_exit(self, monkeypatch):
        monkeypatch.setattr(
            utils.subprocess, "run",
            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 1, stdout="", stderr="no such pid"),
        )
        assert read_metaspace(1) is None

    @pytest.mark.parametrize("error", [
        FileNotFoundError("jcmd"),
        subprocess.TimeoutExpired(["jcmd"], 10),
    ])
    def test_command_failures(self, monkeypatch, error):
        def fake_run(cmd, **kwargs):
            raise error

        monkeypatch.setattr(utils.subprocess, "run", fake_run)
        assert read_metaspace(1) is None

    def test_no_summary_line(self, monkeypatch):
        monkeypatch.setattr(
            utils.subprocess, "run",
            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout="12345:\n", stderr=""),
        )
        assert read_metaspace(1) is None


class TestCollector:
    def test_collect_all_sources(self, proc_root, monkeypatch):
        monkeypatch.setattr(
            "slabsight.collector.read_metaspace",
            lambda pid, jcmd, timeout: MetaspaceReading(2048, 1024),
        )
        collector = ProcSourceCollector(42, {"sources": {"proc_root": str(proc_root)}})
        raw = collector.collect(123.0)

        assert raw.timestamp == 123.0
        assert len(raw.slabs) == 3
        assert len(raw.buddy) == 3
        assert raw.metaspace.used_kb == 1024
        assert raw.errors == [f"{proc_root / 'slabinfo'}: skipped 1 malformed row(s)"]
        assert raw.missing_sources() == ()

    def test_unavailable_sources_are_reported(self, tmp_path, monkeypatch):
        monkeypatch.setattr("slabsight.collector.read_metaspace", lambda pid, jcmd, timeout: None)
        collector = ProcSourceCollector(42, {"sources": {"proc_root": str(tmp_path)}})
        raw = collector.collect(1.0)

        assert raw.slabs is None and raw.vmstat is None and raw.buddy is None
        assert set(raw.missing_sources()) == {"slabinfo", "vmstat", "buddyinfo", "metaspace"}
        assert len(raw.errors) == 4
