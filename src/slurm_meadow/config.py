"""Settings for the Slurm meadow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional

ENV_PREFIX = "SLURM_MEADOW_"


@dataclass
class MeadowConfig:
    """Per-pipeline meadow settings.

    `submission_options` is appended to every sbatch call. `users_of_interest`
    of None means the jobs of all users. When `submit_script_dir` is set, each
    submission command line is also saved there.
    """

    pipeline_name: Optional[str] = None
    submission_options: str = ""
    users_of_interest: Optional[List[str]] = None
    submit_script_dir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "MeadowConfig":
        users = environ.get(ENV_PREFIX + "USERS", "")
        return cls(
            pipeline_name=environ.get(ENV_PREFIX + "PIPELINE_NAME") or None,
            submission_options=environ.get(ENV_PREFIX + "SUBMISSION_OPTIONS", ""),
            users_of_interest=[u.strip() for u in users.split(",") if u.strip()] or None,
            submit_script_dir=environ.get(ENV_PREFIX + "SCRIPT_DIR") or None,
        )
