"""Shared fixtures: canned Slurm output and a stand-in for subprocess.Popen."""

import io
import subprocess
from typing import List, Optional, Union

import pytest

SACCT_EXPORT = """\
JobName|JobID|ExitCode|MaxRSS|Reserved|MaxDiskRead|CPUTimeRAW|ElapsedRAW|State|DerivedExitCode|
----------|
pipe-Hive-default-1|4711_1|0:0||00:00:05||120|60|COMPLETED|0:0|
batch|4711_1.batch|0:0|2048K|00:00:05|1.50M|118|60|COMPLETED||
pipe-Hive-default-1|4711_2|0:15|||||| CANCELLED by 1001|0:0|
batch|4711_2.batch|0:15|102400K|00:01:00|0|30|31|CANCELLED by 1001||
batch|4712.batch|1:0|3G|2|2048|7200|7300|TERM_MEMLIMIT|0:0|
"""


class FakePopen:
    """Replays canned stdout for each successive Popen call."""

    def __init__(self, outputs: Union[str, List[str]] = "", returncode: int = 0, stderr: str = "") -> None:
        self.outputs = [outputs] if isinstance(outputs, str) else list(outputs)
        self._returncode = returncode
        self._stderr = stderr
        self.calls: List[List[str]] = []
        self.returncode: Optional[int] = None

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        out = self.outputs[min(len(self.calls), len(self.outputs)) - 1]
        self.stdout = io.StringIO(out)
        errfile = kwargs.get("stderr")
        if hasattr(errfile, "write"):
            errfile.write(self._stderr)
            errfile.flush()
        self.returncode = None
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.returncode = self._returncode
        return False


def completed(cmd=None, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd or [], returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def sacct_export():
    return SACCT_EXPORT


@pytest.fixture
def sacct_file(tmp_path):
    path = tmp_path / "sacct.txt"
    path.write_text(SACCT_EXPORT)
    return path
