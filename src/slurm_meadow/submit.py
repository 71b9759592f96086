"""Submit workers to Slurm as a single job array."""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import SubmissionError

logger = logging.getLogger(__name__)

RE_SUBMITTED = re.compile(r"Submitted batch job (\d+)")

PathLike = Union[str, Path]


def job_array_spec(required_worker_count: int) -> str:
    if required_worker_count < 1:
        raise ValueError(f"required_worker_count must be >= 1, got {required_worker_count}")
    return f"1-{required_worker_count}"


def log_paths(rc_name: str, submit_log_subdir: Optional[PathLike]) -> Tuple[str, str]:
    """stdout/stderr targets; %A and %a are expanded by Slurm."""
    if not submit_log_subdir:
        return os.devnull, os.devnull
    base = f"{submit_log_subdir}/log_{rc_name}_%A_%a"
    return f"{base}.out", f"{base}.err"


def build_submit_cmd(
    worker_cmd: str,
    required_worker_count: int,
    job_name: str,
    rc_name: str,
    rc_specific_submission_cmd_args: str = "",
    meadow_specific_submission_cmd_args: str = "",
    submit_log_subdir: Optional[PathLike] = None,
) -> List[str]:
    stdout_file, stderr_file = log_paths(rc_name, submit_log_subdir)
    return [
        "sbatch",
        "-o", stdout_file,
        "-e", stderr_file,
        "-a", job_array_spec(required_worker_count),
        "-J", job_name,
        *shlex.split(rc_specific_submission_cmd_args or ""),
        *shlex.split(meadow_specific_submission_cmd_args or ""),
        "--wrap",
        worker_cmd,
    ]


def write_submit_script(cmd: List[str], script_dir: PathLike) -> Path:
    """Keep a copy of the submission command line for post-mortem debugging."""
    fd, path = tempfile.mkstemp(prefix=f"meadow.{os.getpid()}.", suffix=".sh", dir=str(script_dir))
    with os.fdopen(fd, "w") as fh:
        fh.write(shlex.join(cmd) + "\n")
    logger.info("written submission command to %s", path)
    return Path(path)


def submit_workers(
    worker_cmd: str,
    required_worker_count: int,
    job_name: str,
    rc_name: str,
    rc_specific_submission_cmd_args: str = "",
    meadow_specific_submission_cmd_args: str = "",
    submit_log_subdir: Optional[PathLike] = None,
    script_dir: Optional[PathLike] = None,
) -> Optional[str]:
    """Submit `required_worker_count` copies of `worker_cmd` as one array job.

    Returns the array job id reported by sbatch, or None if it could not be
    found in the output. Raises SubmissionError if sbatch fails; nothing is
    retried.
    """
    cmd = build_submit_cmd(
        worker_cmd,
        required_worker_count,
        job_name,
        rc_name,
        rc_specific_submission_cmd_args,
        meadow_specific_submission_cmd_args,
        submit_log_subdir,
    )
    if script_dir:
        write_submit_script(cmd, script_dir)

    logger.info("executing: %s", shlex.join(cmd))
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, errors="ignore")
    except OSError as e:
        raise SubmissionError(cmd, None, reason=str(e)) from e
    if proc.returncode:
        raise SubmissionError(cmd, proc.returncode, stderr=proc.stderr, reason="could not submit job(s)")

    m = RE_SUBMITTED.search(proc.stdout or "")
    if not m:
        logger.warning("could not find a job id in sbatch output: %r", proc.stdout)
        return None
    return m.group(1)
