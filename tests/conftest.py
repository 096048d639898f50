from __future__ import annotations
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from execbox.core.languages import LanguageRegistry
from execbox.core.models import LanguageConfig, ProcessResult, RecipeKind
from execbox.runner.process import Deadline, ProcessRunner
from execbox.services.dispatcher import Dispatcher
from execbox.services.workspace import WorkspaceStore

PY = sys.executable


@pytest.fixture
def py_registry() -> LanguageRegistry:
    """Recipes driven by the interpreter running the tests, so no external toolchain is needed."""
    return LanguageRegistry({
        "python": LanguageConfig(kind=RecipeKind.INTERPRET, compiler=PY, filename="main.py", run_cmd=PY),
        "python-checked": LanguageConfig(
            kind=RecipeKind.INTERPRET,
            compiler=PY,
            filename="main.py",
            run_cmd=PY,
            build_args=("-m", "py_compile", "{}"),
        ),
    })


@pytest.fixture
def ws_root(tmp_path: Path) -> Path:
    return tmp_path / "ws"


@pytest.fixture
def store(ws_root: Path) -> WorkspaceStore:
    return WorkspaceStore(ws_root)


@pytest.fixture
def make_dispatcher(py_registry, store):
    def _make(timeout_s: float = 10.0, registry: Optional[LanguageRegistry] = None, runner=None) -> Dispatcher:
        return Dispatcher(
            registry=registry or py_registry,
            workspaces=store,
            runner=runner or ProcessRunner(kill_grace_s=1.0),
            timeout_s=timeout_s,
        )
    return _make


@dataclass
class Call:
    argv: List[str]
    cwd: Path
    new_process_group: bool
    files: List[str]


@dataclass
class FakeRunner:
    """Records every spawn and answers from a script of results, one per call."""
    results: List[ProcessResult] = field(default_factory=list)
    calls: List[Call] = field(default_factory=list)
    hook: Optional[Callable[[List[str], Deadline], None]] = None

    def run(self, argv, cwd, deadline, new_process_group=True):
        self.calls.append(Call(list(argv), Path(cwd), new_process_group, sorted(os.listdir(cwd))))
        if self.hook:
            self.hook(argv, deadline)
        if self.results:
            return self.results.pop(0)
        return ProcessResult(output=b"", returncode=0)


def ok(out: bytes = b"") -> ProcessResult:
    return ProcessResult(output=out, returncode=0)


def failed(out: bytes = b"", rc: int = 1) -> ProcessResult:
    return ProcessResult(output=out, returncode=rc)


def is_alive(pid: int, wait_s: float = 3.0) -> bool:
    """True while /proc shows pid as a live (non-zombie) process after up to wait_s."""
    end = time.monotonic() + wait_s
    while True:
        try:
            stat = Path(f"/proc/{pid}/stat").read_text()
            state = stat.rsplit(")", 1)[1].split()[0]
            alive = state not in ("Z", "X")
        except (FileNotFoundError, ProcessLookupError):
            alive = False
        if not alive or time.monotonic() > end:
            return alive
        time.sleep(0.05)
