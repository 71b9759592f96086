"""Slurm meadow: run workflow workers as Slurm job arrays.

Submits workers, normalizes live queue state and turns sacct accounting
exports into resource usage records.
"""

__version__ = "1.0.0"

from .accounting import ResourceUsageRecord
from .causes import CauseOfDeath, classify
from .config import MeadowConfig
from .errors import (
    AccountingError,
    CommandError,
    ConfigurationError,
    MeadowError,
    MeadowUnavailableError,
    SubmissionError,
)
from .meadow import Meadow, find_available_meadow, register_meadow
from .slurm import SlurmMeadow
from .status import CanonicalStatus
from .units import normalize_memory, recover_datetime

__all__ = [
    "AccountingError",
    "CanonicalStatus",
    "CauseOfDeath",
    "CommandError",
    "ConfigurationError",
    "Meadow",
    "MeadowConfig",
    "MeadowError",
    "MeadowUnavailableError",
    "ResourceUsageRecord",
    "SlurmMeadow",
    "SubmissionError",
    "classify",
    "find_available_meadow",
    "normalize_memory",
    "recover_datetime",
    "register_meadow",
]
