"""The interface every meadow (batch scheduler adapter) implements.

A workflow engine talks to its compute resources only through this contract.
Concrete meadows register themselves with `register_meadow` and are picked at
runtime by `find_available_meadow`, which asks each one whether its scheduler
can be reached from this host.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from .accounting import ResourceUsageRecord, TimeLike
from .config import MeadowConfig
from .errors import MeadowUnavailableError
from .status import CanonicalStatus

logger = logging.getLogger(__name__)


class Meadow(ABC):
    """Base class of all meadows."""

    type_name = "Meadow"

    def __init__(self, config: Optional[MeadowConfig] = None) -> None:
        self.config = config or MeadowConfig()
        self._cluster_name: Optional[str] = None

    # ---------- Identification ----------
    @abstractmethod
    def name(self) -> Optional[str]:
        """Name of the cluster, or None when the scheduler is not reachable."""

    def available(self) -> bool:
        self._cluster_name = self.name()
        return self._cluster_name is not None

    @property
    def signature(self) -> str:
        # _cluster_name is filled in by available()
        name = self._cluster_name if self._cluster_name is not None else self.name()
        return f"{self.type_name}/{name}"

    def job_name_prefix(self) -> str:
        pipeline_name = self.config.pipeline_name
        return f"{pipeline_name}-Hive-" if pipeline_name else "Hive-"

    def job_array_common_name(self, rc_name: str, iteration: Union[int, str]) -> str:
        return f"{self.job_name_prefix()}{rc_name}-{iteration}"

    @abstractmethod
    def get_current_worker_process_id(self, environ: Mapping[str, str]) -> str:
        ...

    # ---------- Queue ----------
    @abstractmethod
    def status_of_all_our_workers(self, users: Optional[Iterable[str]] = None) -> Dict[str, CanonicalStatus]:
        ...

    @abstractmethod
    def count_pending_workers_by_rc_name(self) -> Tuple[Dict[str, int], int]:
        ...

    @abstractmethod
    def count_running_workers(self, users: Optional[Iterable[str]] = None) -> int:
        ...

    @abstractmethod
    def check_worker_is_alive_and_mine(self, process_id: str) -> bool:
        ...

    @abstractmethod
    def kill_worker(self, process_id: str) -> None:
        ...

    @abstractmethod
    def submit_workers(
        self,
        worker_cmd: str,
        required_worker_count: int,
        iteration: Union[int, str],
        rc_name: str,
        rc_specific_submission_cmd_args: str = "",
        submit_log_subdir: Optional[str] = None,
    ) -> Optional[str]:
        ...

    # ---------- Accounting ----------
    @abstractmethod
    def get_report_entries_for_process_ids(self, process_ids: Iterable[str]) -> Dict[str, ResourceUsageRecord]:
        ...

    @abstractmethod
    def get_report_entries_for_time_interval(
        self, from_time: TimeLike, to_time: TimeLike, username: Optional[str] = None
    ) -> Dict[str, ResourceUsageRecord]:
        ...


MEADOW_CLASSES: List[Type[Meadow]] = []


def register_meadow(cls: Type[Meadow]) -> Type[Meadow]:
    if cls not in MEADOW_CLASSES:
        MEADOW_CLASSES.append(cls)
    return cls


def find_available_meadow(config: Optional[MeadowConfig] = None) -> Meadow:
    """Instantiate the first registered meadow whose scheduler responds."""
    for cls in MEADOW_CLASSES:
        meadow = cls(config)
        if meadow.available():
            logger.info("using meadow %s", meadow.signature)
            return meadow
        logger.debug("meadow %s is not available", cls.type_name)
    raise MeadowUnavailableError(
        "no meadow is available on this host (tried: "
        + ", ".join(cls.type_name for cls in MEADOW_CLASSES)
        + ")"
    )
