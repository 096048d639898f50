from __future__ import annotations
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import BinaryIO, List

import structlog

from ..core.models import ProcessResult

log = structlog.get_logger(__name__)


class Deadline:
    """One wall-clock budget shared by every step of a request."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        self._expires = time.monotonic() + timeout_s

    def remaining(self) -> float:
        return max(0.0, self._expires - time.monotonic())

    def expired(self) -> bool:
        return self.remaining() <= 0


class ProcessRunner:
    def __init__(self, kill_grace_s: float = 2.0):
        self.kill_grace_s = kill_grace_s

    def run(self, argv: List[str], cwd: Path, deadline: Deadline, new_process_group: bool = True) -> ProcessResult:
        """
        Run one process with stdout+stderr merged into a single capture.

        With `new_process_group` the child leads its own session, so the whole
        group (the child and anything it spawned) is killed once the child
        exits or the deadline fires, not just the direct child. Completion is
        decided by the child's exit, not by EOF on the pipe, so a background
        descendant holding stdout cannot stall the request. Output captured
        before a failure is always returned.
        """
        if deadline.expired():
            return ProcessResult(output=b"", returncode=None, timed_out=True)

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=str(cwd),
                start_new_session=new_process_group,
            )
        except OSError as e:
            return ProcessResult(output=b"", returncode=None, error=str(e))

        chunks: List[bytes] = []
        reader = threading.Thread(target=_pump, args=(proc.stdout, chunks), daemon=True)
        reader.start()

        exited = _wait_exited(proc.pid, deadline)
        if not exited:
            log.warning("process.timeout", argv=argv[0], pid=proc.pid, timeout_s=deadline.timeout_s)
        # the child is a zombie at this point, so its pid still reserves the group id
        if new_process_group:
            _killpg(proc.pid)
        elif not exited:
            proc.kill()
        proc.wait()

        reader.join(self.kill_grace_s)
        # a descendant outside the group may still hold the pipe; keep what we have
        output = b"".join(list(chunks))
        return ProcessResult(output=output, returncode=proc.returncode, timed_out=not exited)


def _pump(stream: BinaryIO, chunks: List[bytes]) -> None:
    try:
        for chunk in iter(lambda: stream.read1(65536), b""):
            chunks.append(chunk)
    finally:
        stream.close()


def _wait_exited(pid: int, deadline: Deadline) -> bool:
    """Wait for the child to exit without reaping it. False when the deadline fires first."""
    delay = 0.001
    while True:
        if os.waitid(os.P_PID, pid, os.WEXITED | os.WNOHANG | os.WNOWAIT) is not None:
            return True
        left = deadline.remaining()
        if left <= 0:
            return False
        delay = min(delay * 2, left, 0.05)
        time.sleep(delay)


def _killpg(pgid: int) -> None:
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass  # group already gone
