from __future__ import annotations
import shutil
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

from ..core.errors import InfrastructureError
from ..core.models import LanguageConfig, Workspace
from ..core.utils import WORKSPACE_PREFIX, new_execution_id

log = structlog.get_logger(__name__)


class WorkspaceStore:
    """
    Per-request working directories on the local filesystem:
      <root>/execution_<id>/
        ├─ <filename>      (source submitted by the caller)
        └─ ...             (build artifacts: a.out, *.class, __pycache__)
    A directory lives exactly as long as the request that created it.
    """

    def __init__(self, root: Path):
        self.root = root if root.is_absolute() else root.resolve()

    def acquire(self) -> Workspace:
        execution_id = new_execution_id()
        path = self.root / f"{WORKSPACE_PREFIX}{execution_id}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.mkdir(mode=0o755, exist_ok=False)
        except OSError as e:
            log.error("workspace.create_failed", path=str(path), error=str(e))
            raise InfrastructureError("Failed to create execution directory") from e
        return Workspace(execution_id=execution_id, root=path)

    def write_source(self, ws: Workspace, config: LanguageConfig, code: str) -> Path:
        src = ws.root / config.filename
        try:
            # lone surrogates (legal in a JSON string) have no UTF-8 form
            src.write_bytes(code.encode("utf-8", errors="replace"))
        except OSError as e:
            log.error("workspace.write_failed", path=str(src), error=str(e))
            raise InfrastructureError("Failed to write code file") from e
        return src

    def release(self, ws: Workspace) -> None:
        # the response is already decided at this point; never raise from here
        try:
            shutil.rmtree(ws.root)
        except OSError as e:
            log.warning("workspace.release_failed", path=str(ws.root), error=str(e))
            shutil.rmtree(ws.root, ignore_errors=True)

    @contextmanager
    def session(self) -> Iterator[Workspace]:
        ws = self.acquire()
        try:
            yield ws
        finally:
            self.release(ws)

    def sweep_stale(self, max_age_s: float) -> int:
        """Remove execution_* leftovers (e.g. from a crashed host process) older than max_age_s."""
        if not self.root.is_dir():
            return 0
        cutoff = time.time() - max_age_s
        removed = 0
        for p in self.root.glob(f"{WORKSPACE_PREFIX}*"):
            try:
                if not p.is_dir() or p.stat().st_mtime > cutoff:
                    continue
            except OSError:
                continue  # vanished while scanning
            shutil.rmtree(p, ignore_errors=True)
            if not p.exists():
                removed += 1
        if removed:
            log.info("workspace.swept", root=str(self.root), removed=removed)
        return removed
