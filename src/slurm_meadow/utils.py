"""Process and parsing helpers shared by the meadow modules."""

from __future__ import annotations

import argparse
import logging
import subprocess
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


# ---------- Processes ----------
def run(cmd: Sequence[str]) -> str:
    """Run a command and capture stderr to avoid noisy scheduler warnings."""
    logger.debug("running: %s", " ".join(cmd))
    return subprocess.check_output(list(cmd), text=True, errors="ignore", stderr=subprocess.PIPE)


def query(cmd: Sequence[str]) -> List[str]:
    """Run a read-only query and return its non-blank output lines.

    A scheduler that is absent or refuses the query is reported as no output.
    """
    try:
        out = run(cmd)
    except FileNotFoundError:
        logger.warning("%s not found in PATH; treating as no jobs", cmd[0])
        return []
    except subprocess.CalledProcessError as e:
        logger.warning("%s exited with %s; treating as no jobs", " ".join(cmd), e.returncode)
        return []
    return [line.strip() for line in out.splitlines() if line.strip()]


# ---------- Slurm values ----------
def parse_slurm_time_to_seconds(val: Optional[str]) -> Optional[int]:
    """Parse Slurm time strings like 1-02:03:04, 02:03:04 or 4711 to seconds."""
    if not val:
        return None
    val = val.strip()
    if val.lower() in {"unknown", "invalid", "none", ""}:
        return None
    if val.isdigit():
        return int(val)
    days = 0
    if "-" in val:
        day_part, rest = val.split("-", 1)
        try:
            days = int(day_part)
            val = rest
        except ValueError:
            pass
    parts = val.split(":")
    if len(parts) == 2:
        parts = ["0"] + parts
    if len(parts) < 3:
        return None
    try:
        hours = float(parts[0])
        minutes = float(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return None
    return int(days * 86400 + hours * 3600 + minutes * 60 + seconds)


def parse_int(val: Optional[str]) -> Optional[int]:
    if val is None:
        return None
    val = val.strip()
    return int(val) if val.isdigit() else None


# ---------- argparse ----------
def positive_int(val: str) -> int:
    n = int(val)
    if n < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return n
