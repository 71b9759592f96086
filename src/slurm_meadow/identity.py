"""Who is running: the worker's own job id and the invoking user."""

from __future__ import annotations

from typing import Mapping

import psutil

from .errors import ConfigurationError


def resolve_worker_process_id(environ: Mapping[str, str]) -> str:
    """Return the process id of the worker described by a Slurm job environment.

    Array tasks are identified as '<array job id>_<task id>'.
    """
    job_id = environ.get("SLURM_JOB_ID") or environ.get("SLURM_JOBID")
    if not job_id:
        raise ConfigurationError("Could not establish the process_id: SLURM_JOB_ID is not set")
    array_job_id = environ.get("SLURM_ARRAY_JOB_ID")
    array_task_id = environ.get("SLURM_ARRAY_TASK_ID")
    if array_job_id and array_task_id:
        return f"{array_job_id}_{array_task_id}"
    return job_id


def current_user() -> str:
    """Name of the OS user owning this process."""
    name = psutil.Process().username()
    # Windows reports DOMAIN\user
    return name.rsplit("\\", 1)[-1]
