"""Live queue queries: worker statuses, counts, liveness and cancellation."""

from __future__ import annotations

import logging
import re
import subprocess
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .utils import query

logger = logging.getLogger(__name__)

# squeue state names that mean the job is gone from our point of view
TERMINAL_STATES = {"COMPLETED", "FAILED"}
NOT_ALIVE_MARKERS = ("Invalid job id specified", "Invalid user")


class CanonicalStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUSPENDED = "SUSPENDED"
    OTHER_ACTIVE = "OTHER-ACTIVE"


def canonical_status(state: str) -> CanonicalStatus:
    """Collapse a native squeue state (e.g. CONFIGURING) into a CanonicalStatus."""
    state = state.strip().upper()
    try:
        return CanonicalStatus(state)
    except ValueError:
        return CanonicalStatus.OTHER_ACTIVE


def squeue_cmd(user: Optional[str], *args: str) -> List[str]:
    cmd = ["squeue", "--array", "-h"]
    if user:
        cmd += ["-u", user]
    return cmd + list(args)


def _users(users: Optional[Iterable[str]]) -> Sequence[Optional[str]]:
    users = list(users or [])
    return users or [None]


def status_of_all_workers(users: Optional[Iterable[str]] = None) -> Dict[str, CanonicalStatus]:
    """Snapshot of every live job of the given users (all users when None)."""
    status: Dict[str, CanonicalStatus] = {}
    for user in _users(users):
        for line in query(squeue_cmd(user, "-o", "%i|%T")):
            parts = line.split("|")
            if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
                logger.debug("ignoring squeue line %r", line)
                continue
            job_id, state = parts[0].strip(), parts[1].strip().upper()
            if state in TERMINAL_STATES:
                continue
            status.setdefault(job_id, canonical_status(state))
    return status


def count_running_workers(job_name_prefix: str, users: Optional[Iterable[str]] = None) -> int:
    total = 0
    for user in _users(users):
        names = query(squeue_cmd(user, "-t", "RUNNING", "-o", "%j"))
        total += sum(1 for name in names if name.startswith(job_name_prefix))
    return total


def pending_name_pattern(job_name_prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(job_name_prefix)}(\S+)-\d+(\[\d+\])?\b")


def count_pending_workers_by_rc_name(job_name_prefix: str, username: str) -> Tuple[Dict[str, int], int]:
    """Count this user's pending workers per resource class.

    Job names look like '<prefix><rc_name>-<iteration>', optionally followed
    by an array index in brackets.
    """
    pattern = pending_name_pattern(job_name_prefix)
    by_rc_name: Dict[str, int] = {}
    total = 0
    for name in query(squeue_cmd(username, "-t", "PENDING", "-o", "%j")):
        m = pattern.search(name)
        if not m:
            continue
        rc_name = m.group(1)
        by_rc_name[rc_name] = by_rc_name.get(rc_name, 0) + 1
        total += 1
    return by_rc_name, total


def check_worker_is_alive_and_mine(process_id: str, username: str) -> bool:
    cmd = ["squeue", "-h", "-u", username, f"--job={process_id}"]
    logger.debug("running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, errors="ignore")
    except FileNotFoundError:
        logger.warning("squeue not found in PATH; %s is not alive", process_id)
        return False
    for line in proc.stdout.splitlines():
        line = line.strip()
        if line and not any(marker in line for marker in NOT_ALIVE_MARKERS):
            return True
    return False


def kill_worker(process_id: str) -> None:
    """Ask Slurm to cancel a job. Does not wait for it to die."""
    cmd = ["scancel", str(process_id)]
    logger.debug("running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, errors="ignore")
    except FileNotFoundError:
        logger.warning("scancel not found in PATH; could not cancel %s", process_id)
        return
    if proc.returncode:
        logger.warning("scancel %s exited with %s: %s", process_id, proc.returncode, proc.stderr.strip())
