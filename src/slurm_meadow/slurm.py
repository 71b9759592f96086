"""The Slurm meadow."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from . import accounting, status, submit
from .accounting import ResourceUsageRecord, TimeLike
from .identity import current_user, resolve_worker_process_id
from .meadow import Meadow, register_meadow
from .status import CanonicalStatus
from .utils import query


@register_meadow
class SlurmMeadow(Meadow):
    """Runs workers as Slurm job arrays."""

    type_name = "SLURM"

    def name(self) -> Optional[str]:
        # Slurm is considered available when the cluster name can be established.
        for line in query(["sacctmgr", "-n", "-p", "show", "clusters"]):
            cluster = line.split("|", 1)[0].strip()
            if cluster:
                return cluster
        return None

    def get_current_worker_process_id(self, environ: Mapping[str, str]) -> str:
        return resolve_worker_process_id(environ)

    def _users(self, users: Optional[Iterable[str]]) -> Optional[Iterable[str]]:
        return users if users is not None else self.config.users_of_interest

    def status_of_all_our_workers(self, users: Optional[Iterable[str]] = None) -> Dict[str, CanonicalStatus]:
        return status.status_of_all_workers(self._users(users))

    def count_pending_workers_by_rc_name(self) -> Tuple[Dict[str, int], int]:
        # squeue lists every user's jobs unless told otherwise
        return status.count_pending_workers_by_rc_name(self.job_name_prefix(), current_user())

    def count_running_workers(self, users: Optional[Iterable[str]] = None) -> int:
        return status.count_running_workers(self.job_name_prefix(), self._users(users))

    def check_worker_is_alive_and_mine(self, process_id: str) -> bool:
        return status.check_worker_is_alive_and_mine(process_id, current_user())

    def kill_worker(self, process_id: str) -> None:
        status.kill_worker(process_id)

    def submit_workers(
        self,
        worker_cmd: str,
        required_worker_count: int,
        iteration: Union[int, str],
        rc_name: str,
        rc_specific_submission_cmd_args: str = "",
        submit_log_subdir: Optional[str] = None,
    ) -> Optional[str]:
        return submit.submit_workers(
            worker_cmd,
            required_worker_count,
            self.job_array_common_name(rc_name, iteration),
            rc_name,
            rc_specific_submission_cmd_args=rc_specific_submission_cmd_args,
            meadow_specific_submission_cmd_args=self.config.submission_options,
            submit_log_subdir=submit_log_subdir,
            script_dir=self.config.submit_script_dir,
        )

    def get_report_entries_for_process_ids(self, process_ids: Iterable[str]) -> Dict[str, ResourceUsageRecord]:
        return accounting.report_entries_for_process_ids(process_ids)

    def get_report_entries_for_time_interval(
        self, from_time: TimeLike, to_time: TimeLike, username: Optional[str] = None
    ) -> Dict[str, ResourceUsageRecord]:
        return accounting.report_entries_for_time_interval(from_time, to_time, username)
