#!/usr/bin/env python3
"""Drive the Slurm meadow from the command line."""

from __future__ import annotations

import argparse
import contextlib
import csv
import logging
import os
import shutil
import sys
from typing import Dict, List, Optional

from .accounting import ResourceUsageRecord, parse_report_file
from .config import MeadowConfig
from .errors import ConfigurationError, MeadowError
from .slurm import SlurmMeadow
from .utils import positive_int

REPORT_FIELDS = [
    "exit_status",
    "exception_status",
    "cause_of_death",
    "mem_megs",
    "disk_read_megs",
    "pending_sec",
    "cpu_sec",
    "lifespan_sec",
]


# ---------- Output ----------
def fmt_value(v: object) -> str:
    if v is None:
        return "n/a"
    if isinstance(v, float):
        return f"{v:.2f}"
    return str(v)


def render_table(cols: List[str], rows: List[Dict[str, object]]) -> None:
    w = {c: len(c) for c in cols}
    table = []
    for r in rows:
        row = {c: fmt_value(r.get(c)) for c in cols}
        for k, v in row.items():
            w[k] = max(w[k], len(v))
        table.append(row)
    hdr = "  ".join(f"{c:<{w[c]}}" for c in cols)
    print(hdr)
    print("-" * len(hdr))
    for row in table:
        print("  ".join(f"{row[c]:<{w[c]}}" for c in cols))


def report_rows(entries: Dict[str, ResourceUsageRecord]) -> List[Dict[str, object]]:
    rows = []
    for job_id in sorted(entries):
        row: Dict[str, object] = {"JOBID": job_id}
        row.update(entries[job_id].as_dict())
        rows.append(row)
    return rows


def write_csv(rows: List[Dict[str, object]], path: str) -> None:
    fields = ["JOBID"] + REPORT_FIELDS
    f = contextlib.nullcontext(sys.stdout) if path == "-" else open(path, "w", newline="")
    with f as fh:
        w = csv.DictWriter(fh, fieldnames=fields, delimiter="\t", extrasaction="ignore")
        w.writeheader()
        for r in rows:
            row = dict(r)
            for field in ("mem_megs", "disk_read_megs"):
                if row.get(field) is not None:
                    row[field] = round(row[field], 2)
            w.writerow(row)


# ---------- Commands ----------
def cmd_name(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    if not shutil.which("sacctmgr"):
        print("ERROR: sacctmgr not found in PATH.", file=sys.stderr)
        return 1
    name = meadow.name()
    if name is None:
        print("ERROR: could not establish the Slurm cluster name.", file=sys.stderr)
        return 1
    print(name)
    return 0


def cmd_whoami(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    print(meadow.get_current_worker_process_id(os.environ))
    return 0


def cmd_status(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    statuses = meadow.status_of_all_our_workers(args.user)
    render_table(
        ["JOBID", "STATUS"],
        [{"JOBID": job_id, "STATUS": statuses[job_id].value} for job_id in sorted(statuses)],
    )
    return 0


def cmd_running(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    print(meadow.count_running_workers(args.user))
    return 0


def cmd_pending(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    by_rc_name, total = meadow.count_pending_workers_by_rc_name()
    render_table(
        ["RC_NAME", "PENDING"],
        [{"RC_NAME": rc, "PENDING": by_rc_name[rc]} for rc in sorted(by_rc_name)],
    )
    print(f"\ntotal pending: {total}")
    return 0


def cmd_alive(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    alive = meadow.check_worker_is_alive_and_mine(args.jobid)
    print("alive" if alive else "not alive")
    return 0 if alive else 1


def cmd_kill(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    meadow.kill_worker(args.jobid)
    return 0


def cmd_submit(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    job_id = meadow.submit_workers(
        args.worker_cmd,
        args.count,
        args.iteration,
        args.rc_name,
        rc_specific_submission_cmd_args=args.rc_args,
        submit_log_subdir=args.log_dir,
    )
    if job_id:
        print(job_id)
    return 0


def cmd_report(meadow: SlurmMeadow, args: argparse.Namespace) -> int:
    if args.file:
        entries = parse_report_file(args.file)
    elif args.job:
        entries = meadow.get_report_entries_for_process_ids(args.job)
    else:
        entries = meadow.get_report_entries_for_time_interval(args.from_time, args.to_time, args.user)
    rows = report_rows(entries)
    if args.csv:
        write_csv(rows, args.csv)
    else:
        render_table(["JOBID"] + REPORT_FIELDS, rows)
    return 0


# ---------- CLI ----------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="slurm-meadow",
        description="Submit, monitor and account for workflow workers running under Slurm.",
    )
    ap.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG logging")
    ap.add_argument("--pipeline-name", help="Pipeline name used in job names (default: $SLURM_MEADOW_PIPELINE_NAME)")
    ap.add_argument(
        "--submission-options",
        help="Extra sbatch arguments for every submission (default: $SLURM_MEADOW_SUBMISSION_OPTIONS)",
    )
    ap.add_argument("--script-dir", help="Save each sbatch command line in this directory")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("name", help="Print the Slurm cluster name (fails if Slurm is unavailable)").set_defaults(
        func=cmd_name
    )
    sub.add_parser("whoami", help="Print the worker process id of the current Slurm job").set_defaults(
        func=cmd_whoami
    )

    p = sub.add_parser("status", help="Show live workers and their status")
    p.add_argument("--user", action="append", help="Only jobs of USER (repeatable; default: all users)")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("running", help="Count running workers of this pipeline")
    p.add_argument("--user", action="append", help="Only jobs of USER (repeatable; default: all users)")
    p.set_defaults(func=cmd_running)

    sub.add_parser("pending", help="Count my pending workers per resource class").set_defaults(func=cmd_pending)

    p = sub.add_parser("alive", help="Check that a job is alive and belongs to me")
    p.add_argument("jobid")
    p.set_defaults(func=cmd_alive)

    p = sub.add_parser("kill", help="Cancel a job")
    p.add_argument("jobid")
    p.set_defaults(func=cmd_kill)

    p = sub.add_parser("submit", help="Submit workers as one job array")
    p.add_argument("--count", type=positive_int, required=True, metavar="N", help="Number of workers")
    p.add_argument("--rc-name", required=True, help="Resource class name")
    p.add_argument("--iteration", default="1", help="Iteration tag used in the job name (default: 1)")
    p.add_argument("--rc-args", default="", help="Resource-class specific sbatch arguments")
    p.add_argument("--log-dir", help="Directory for worker stdout/stderr (default: discard)")
    p.add_argument("worker_cmd", help="Worker command line")
    p.set_defaults(func=cmd_submit)

    p = sub.add_parser("report", help="Resource usage of finished workers")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--from", dest="from_time", metavar="'YYYY-MM-DD HH:MM:SS'", help="Start of the interval")
    src.add_argument("--job", action="append", help="Job id (repeatable)")
    src.add_argument("--file", help="Parse a saved `sacct -p` export instead of calling sacct")
    p.add_argument("--to", dest="to_time", metavar="'YYYY-MM-DD HH:MM:SS'", help="End of the interval")
    p.add_argument("--user", help="Only jobs of USER (with --from)")
    p.add_argument("--csv", metavar="PATH", help='Write CSV to PATH (use "-" for stdout)')
    p.set_defaults(func=cmd_report)
    return ap


def main(argv: Optional[List[str]] = None) -> None:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.command == "report" and args.from_time and not args.to_time:
        ap.error("--from requires --to")

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    config = MeadowConfig.from_env(os.environ)
    if args.pipeline_name is not None:
        config.pipeline_name = args.pipeline_name
    if args.submission_options is not None:
        config.submission_options = args.submission_options
    if args.script_dir is not None:
        config.submit_script_dir = args.script_dir

    try:
        rc = args.func(SlurmMeadow(config), args)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    except MeadowError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(rc)


if __name__ == "__main__":
    main()
