"""Map scheduler termination states to a cause of death."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class CauseOfDeath(str, Enum):
    MEMLIMIT = "MEMLIMIT"
    RUNLIMIT = "RUNLIMIT"
    KILLED_BY_USER = "KILLED_BY_USER"
    UNKNOWN = "UNKNOWN"


STATUS_TO_CAUSE = {
    "TERM_MEMLIMIT": CauseOfDeath.MEMLIMIT,
    "TERM_RUNLIMIT": CauseOfDeath.RUNLIMIT,
    "TERM_FORCE_OWNER": CauseOfDeath.KILLED_BY_USER,
}


def classify(state: Optional[str]) -> CauseOfDeath:
    """Classify a State column value such as 'CANCELLED by 1001'."""
    if not state:
        return CauseOfDeath.UNKNOWN
    state = state.strip()
    # Cancelled array tasks carry qualifiers after the base state.
    if "CANCELLED" in state:
        return CauseOfDeath.KILLED_BY_USER
    return STATUS_TO_CAUSE.get(state, CauseOfDeath.UNKNOWN)
