"""Exceptions raised by the Slurm meadow."""

from __future__ import annotations

from typing import Optional, Sequence


class MeadowError(Exception):
    """Base class for all meadow errors."""


class ConfigurationError(MeadowError):
    """Required identification or configuration data is missing."""


class MeadowUnavailableError(MeadowError):
    """No registered meadow answered its availability check."""


class CommandError(MeadowError):
    """An external scheduler command could not be run or exited non-zero."""

    def __init__(self, cmd: Sequence[str], returncode: Optional[int], stderr: str = "", reason: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"command {' '.join(self.cmd)!r} failed"
        if returncode is not None:
            msg += f" with exit code {returncode}"
        if reason:
            msg += f": {reason}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class AccountingError(CommandError):
    """The accounting export could not be read completely."""


class SubmissionError(CommandError):
    """sbatch refused or failed to submit a job array."""
