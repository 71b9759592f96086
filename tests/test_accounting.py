"""Tests for sacct accounting export parsing."""

import sys
from datetime import datetime
from unittest.mock import patch

import pytest

from conftest import SACCT_EXPORT, FakePopen
from slurm_meadow.accounting import (
    SACCT_REPORT_FIELDS,
    ResourceUsageRecord,
    parse_report_file,
    parse_report_lines,
    parse_report_source,
    report_entries_for_process_ids,
    report_entries_for_time_interval,
)
from slurm_meadow.causes import CauseOfDeath
from slurm_meadow.errors import AccountingError

HEADER = "JobName|JobID|ExitCode|MaxRSS|Reserved|MaxDiskRead|CPUTimeRAW|ElapsedRAW|State|DerivedExitCode|\n----|\n"


class TestParseReportLines:
    def test_batch_steps_filed_under_parent_id(self, sacct_export):
        entries = parse_report_lines(sacct_export.splitlines(keepends=True))
        assert sorted(entries) == ["4711_1", "4711_2", "4712"]

    def test_record_fields(self, sacct_export):
        entries = parse_report_lines(sacct_export.splitlines())
        assert entries["4711_1"] == ResourceUsageRecord(
            exit_status="0:0",
            exception_status="UNKNOWN",
            cause_of_death=CauseOfDeath.UNKNOWN,
            mem_megs=2.0,
            disk_read_megs=1.5,
            pending_sec=5,
            cpu_sec=118,
            lifespan_sec=60,
            when_died=None,
        )

    def test_batch_row_wins_over_top_level_row(self, sacct_export):
        rec = parse_report_lines(sacct_export.splitlines())["4711_2"]
        assert rec.mem_megs == pytest.approx(100.0)
        assert rec.cpu_sec == 30
        assert rec.lifespan_sec == 31
        assert rec.pending_sec == 60
        assert rec.cause_of_death is CauseOfDeath.KILLED_BY_USER

    def test_memory_units(self, sacct_export):
        rec = parse_report_lines(sacct_export.splitlines())["4712"]
        assert rec.mem_megs == pytest.approx(3072.0)
        assert rec.disk_read_megs == pytest.approx(2.0)
        assert rec.cause_of_death is CauseOfDeath.MEMLIMIT
        assert rec.exit_status == "1:0"

    def test_exception_status_mirrors_cause_of_death(self, sacct_export):
        # DerivedExitCode is ignored; both fields carry the classified state.
        for rec in parse_report_lines(sacct_export.splitlines()).values():
            assert rec.exception_status == rec.cause_of_death.value

    def test_exactly_two_header_lines_discarded(self):
        lines = [
            "batch|1.batch|0:0|1024K|0|0|1|1|COMPLETED||",
            "batch|2.batch|0:0|1024K|0|0|1|1|COMPLETED||",
            "batch|3.batch|0:0|1024K|0|0|1|1|COMPLETED||",
        ]
        assert list(parse_report_lines(lines)) == ["3"]

    def test_non_batch_rows_skipped(self):
        lines = HEADER.splitlines() + [
            "pipe-Hive-default-1|10|0:0|1024K|0|0|1|1|COMPLETED||",
            "extern|10.extern|0:0|1024K|0|0|1|1|COMPLETED||",
            "pipe-Hive-default-1|10.0|0:0|1024K|0|0|1|1|COMPLETED||",
        ]
        assert parse_report_lines(lines) == {}

    def test_short_and_blank_rows_skipped(self):
        lines = HEADER.splitlines() + ["", "batch|11.batch|0:0", "batch|12.batch|0:0|1024K|0|0|1|1|FAILED||"]
        assert list(parse_report_lines(lines)) == ["12"]

    def test_missing_values_are_none(self):
        lines = HEADER.splitlines() + ["batch|13.batch|0:0||Unknown|||||"]
        rec = parse_report_lines(lines)["13"]
        assert rec.mem_megs is None
        assert rec.pending_sec is None
        assert rec.cpu_sec is None
        assert rec.cause_of_death is CauseOfDeath.UNKNOWN

    def test_idempotent(self, sacct_export):
        first = parse_report_lines(sacct_export.splitlines())
        second = parse_report_lines(sacct_export.splitlines())
        assert first == second
        assert first is not second

    def test_records_are_frozen(self, sacct_export):
        rec = parse_report_lines(sacct_export.splitlines())["4712"]
        with pytest.raises(AttributeError):
            rec.mem_megs = 1.0

    def test_as_dict(self, sacct_export):
        d = parse_report_lines(sacct_export.splitlines())["4712"].as_dict()
        assert d["cause_of_death"] == "MEMLIMIT"
        assert d["when_died"] is None


class TestParseReportSource:
    def test_streams_command_output(self):
        fake = FakePopen(SACCT_EXPORT)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            entries = parse_report_source(["sacct", "-p"])
        assert fake.calls == [["sacct", "-p"]]
        assert len(entries) == 3

    def test_non_zero_exit_is_fatal(self):
        fake = FakePopen(SACCT_EXPORT, returncode=1, stderr="sacct: error: Problem talking to the database")
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            with pytest.raises(AccountingError) as excinfo:
                parse_report_source(["sacct", "-p"])
        assert excinfo.value.returncode == 1
        assert excinfo.value.cmd == ["sacct", "-p"]
        assert "exit code 1" in str(excinfo.value)
        assert "Problem talking to the database" in str(excinfo.value)

    def test_large_stderr_does_not_block_stdout(self):
        # Far more stderr than a pipe buffer holds, written before any stdout.
        script = (
            "import sys\n"
            "sys.stderr.write(\"sacct: warning\\n\" * 20000)\n"
            "sys.stderr.flush()\n"
            "print(\"JobName|JobID\")\n"
            "print(\"----\")\n"
            "print(\"batch|4712.batch|1:0|3G|2|2048|7200|7300|TERM_MEMLIMIT|0:0|\")\n"
        )
        entries = parse_report_source([sys.executable, "-c", script])
        assert list(entries) == ["4712"]

    def test_stderr_reported_after_large_output(self):
        script = (
            "import sys\n"
            "sys.stderr.write(\"x\" * 200000 + \"\\nsacct: error: Problem talking to the database\\n\")\n"
            "sys.exit(1)\n"
        )
        with pytest.raises(AccountingError) as excinfo:
            parse_report_source([sys.executable, "-c", script])
        assert excinfo.value.returncode == 1
        assert "Problem talking to the database" in str(excinfo.value)

    def test_missing_command_is_fatal(self):
        with patch("slurm_meadow.accounting.subprocess.Popen", side_effect=FileNotFoundError("sacct")):
            with pytest.raises(AccountingError, match="sacct"):
                parse_report_source(["sacct", "-p"])


class TestParseReportFile:
    def test_parses_file(self, sacct_file):
        assert sorted(parse_report_file(sacct_file)) == ["4711_1", "4711_2", "4712"]

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(AccountingError):
            parse_report_file(tmp_path / "missing.txt")


class TestReportEntriesForProcessIds:
    def test_batches_of_twenty(self):
        ids = [str(i) for i in range(1, 46)]
        outputs = [HEADER + f"batch|{n}.batch|0:0|1024K|0|0|1|1|COMPLETED||\n" for n in ("1", "21", "41")]
        fake = FakePopen(outputs)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            entries = report_entries_for_process_ids(ids)

        assert len(fake.calls) == 3
        batches = [call[call.index("-j") + 1].split(",") for call in fake.calls]
        assert [len(b) for b in batches] == [20, 20, 5]
        assert batches[0][0] == "1" and batches[2][-1] == "45"
        assert sorted(entries) == ["1", "21", "41"]

    def test_format_argument(self):
        fake = FakePopen(HEADER)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            report_entries_for_process_ids(["7"])
        cmd = fake.calls[0]
        assert cmd[:2] == ["sacct", "-p"]
        assert cmd[cmd.index("--format") + 1] == ",".join(SACCT_REPORT_FIELDS)

    def test_no_ids_runs_nothing(self):
        fake = FakePopen(HEADER)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            assert report_entries_for_process_ids([]) == {}
        assert fake.calls == []

    def test_failing_batch_aborts(self):
        fake = FakePopen(HEADER, returncode=2)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            with pytest.raises(AccountingError):
                report_entries_for_process_ids(["1", "2"])


class TestReportEntriesForTimeInterval:
    def test_interval_widened_by_two_minutes(self):
        fake = FakePopen(SACCT_EXPORT)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            entries = report_entries_for_time_interval("2018-02-27 16:48:00", "2018-02-27 16:48:30")
        assert len(entries) == 3
        assert fake.calls[0] == [
            "sacct",
            "-p",
            "-s",
            "CA,CD,CG,F",
            "--format",
            ",".join(SACCT_REPORT_FIELDS),
            "-S",
            "2018-02-27T16:48",
            "-E",
            "2018-02-27T16:50",
        ]

    def test_user_filter_and_datetimes(self):
        fake = FakePopen(HEADER)
        with patch("slurm_meadow.accounting.subprocess.Popen", fake):
            report_entries_for_time_interval(datetime(2018, 12, 31, 23, 59), datetime(2018, 12, 31, 23, 59), "alice")
        cmd = fake.calls[0]
        assert cmd[cmd.index("-E") + 1] == "2019-01-01T00:01"
        assert cmd[-2:] == ["-u", "alice"]

    def test_bad_time_string(self):
        with pytest.raises(ValueError):
            report_entries_for_time_interval("yesterday", "2018-02-27 16:48:00")
