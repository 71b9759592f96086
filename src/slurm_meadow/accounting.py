"""Parse sacct accounting exports into per-job resource usage records."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .causes import CauseOfDeath, classify
from .errors import AccountingError
from .units import parse_memory_to_megs
from .utils import parse_int, parse_slurm_time_to_seconds

logger = logging.getLogger(__name__)

# Column order matters: parse_report_lines reads fields by position.
SACCT_REPORT_FIELDS = [
    "JobName",
    "JobID",
    "ExitCode",
    "MaxRSS",
    "Reserved",
    "MaxDiskRead",
    "CPUTimeRAW",
    "ElapsedRAW",
    "State",
    "DerivedExitCode",
]
HEADER_LINES = 2
# Finished states only: CANCELLED, COMPLETED, COMPLETING, FAILED
FINISHED_STATES = "CA,CD,CG,F"
# Keeps a single sacct command line well below shell/argv limits.
MAX_IDS_PER_QUERY = 20
INTERVAL_END_BUFFER = timedelta(minutes=2)

TimeLike = Union[str, datetime]


@dataclass(frozen=True)
class ResourceUsageRecord:
    """Resource usage of one finished worker."""

    exit_status: str
    exception_status: str
    cause_of_death: CauseOfDeath
    mem_megs: Optional[float]
    disk_read_megs: Optional[float]
    pending_sec: Optional[int]
    cpu_sec: Optional[int]
    lifespan_sec: Optional[int]
    when_died: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["cause_of_death"] = self.cause_of_death.value
        return d


def sacct_format_arg() -> str:
    return ",".join(SACCT_REPORT_FIELDS)


# ---------- Parsing ----------
def record_from_fields(parts: List[str]) -> ResourceUsageRecord:
    data = dict(zip(SACCT_REPORT_FIELDS, (p.strip() for p in parts)))
    cause_of_death = classify(data["State"])
    return ResourceUsageRecord(
        exit_status=data["ExitCode"],
        # DerivedExitCode is not used: the exception status is the cause of death.
        exception_status=cause_of_death.value,
        cause_of_death=cause_of_death,
        mem_megs=parse_memory_to_megs(data["MaxRSS"]),
        disk_read_megs=parse_memory_to_megs(data["MaxDiskRead"]),
        pending_sec=parse_slurm_time_to_seconds(data["Reserved"]),
        cpu_sec=parse_int(data["CPUTimeRAW"]),
        lifespan_sec=parse_int(data["ElapsedRAW"]),
    )


def parse_report_lines(lines: Iterable[str]) -> Dict[str, ResourceUsageRecord]:
    """Build a job id -> record mapping from `sacct -p` output lines.

    The first two lines are headers. Only the batch step of each job is kept,
    filed under the parent job id.
    """
    entries: Dict[str, ResourceUsageRecord] = {}
    for lineno, raw in enumerate(lines):
        if lineno < HEADER_LINES:
            continue
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        parts = line.split("|")
        if len(parts) < len(SACCT_REPORT_FIELDS):
            logger.debug("skipping short sacct row: %r", line)
            continue
        job_name = parts[0]
        job_id = parts[1].strip().replace(".batch", "")
        if "batch" not in job_name:
            continue
        entries[job_id] = record_from_fields(parts)
    return entries


def parse_report_source(cmd: Sequence[str]) -> Dict[str, ResourceUsageRecord]:
    """Run an accounting export command and parse everything it prints."""
    cmd = list(cmd)
    logger.debug("running: %s", " ".join(cmd))
    # stderr is spooled to a file so a chatty sacct cannot stall stdout.
    with tempfile.TemporaryFile(mode="w+", errors="ignore") as errfile:
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=errfile,
                text=True,
                errors="ignore",
            )
        except OSError as e:
            raise AccountingError(cmd, None, reason=str(e)) from e

        with proc:
            entries = parse_report_lines(proc.stdout)
        errfile.seek(0)
        stderr = errfile.read()
    if proc.returncode:
        raise AccountingError(cmd, proc.returncode, stderr=stderr, reason="could not read accounting data")
    return entries


def parse_report_file(path: Union[str, Path]) -> Dict[str, ResourceUsageRecord]:
    """Parse a saved `sacct -p` export."""
    try:
        with open(path, encoding="utf-8", errors="ignore") as fh:
            return parse_report_lines(fh)
    except OSError as e:
        raise AccountingError(["read", str(path)], None, reason=str(e)) from e


# ---------- Entry points ----------
def report_entries_for_process_ids(
    process_ids: Iterable[str], batch_size: int = MAX_IDS_PER_QUERY
) -> Dict[str, ResourceUsageRecord]:
    ids = [str(p) for p in process_ids]
    combined: Dict[str, ResourceUsageRecord] = {}
    for start in range(0, len(ids), batch_size):
        batch = ids[start : start + batch_size]
        cmd = ["sacct", "-p", "--format", sacct_format_arg(), "-j", ",".join(batch)]
        combined.update(parse_report_source(cmd))
    return combined


def _as_datetime(value: TimeLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")


def report_entries_for_time_interval(
    from_time: TimeLike, to_time: TimeLike, username: Optional[str] = None
) -> Dict[str, ResourceUsageRecord]:
    """Usage of jobs that finished between two wall-clock times.

    The end of the interval is pushed out a little to cover accounting lag.
    """
    start = _as_datetime(from_time).strftime("%Y-%m-%dT%H:%M")
    end = (_as_datetime(to_time) + INTERVAL_END_BUFFER).strftime("%Y-%m-%dT%H:%M")
    cmd = [
        "sacct",
        "-p",
        "-s",
        FINISHED_STATES,
        "--format",
        sacct_format_arg(),
        "-S",
        start,
        "-E",
        end,
    ]
    if username:
        cmd += ["-u", username]
    return parse_report_source(cmd)
