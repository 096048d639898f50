from __future__ import annotations
import time
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Protocol, Type

import structlog

from ..core.errors import (
    BuildError,
    ExecutionError,
    InfrastructureError,
    RunError,
    UnsupportedLanguage,
    describe_failure,
)
from ..core.languages import LanguageRegistry
from ..core.models import CodeRequest, CodeResponse, LanguageConfig, ProcessResult, RecipeKind, Workspace
from ..core.utils import decode_output, substitute_source
from ..runner.process import Deadline, ProcessRunner
from ..settings import Settings
from .workspace import WorkspaceStore

log = structlog.get_logger(__name__)


class State(str, Enum):
    # terminal states of one execution, as reported in logs
    UNSUPPORTED = "unsupported"
    INFRASTRUCTURE_FAILED = "infrastructure_failed"
    BUILD_FAILED = "build_failed"
    RUN_FAILED = "run_failed"
    SUCCEEDED = "succeeded"


_TERMINAL = {
    UnsupportedLanguage: State.UNSUPPORTED,
    InfrastructureError: State.INFRASTRUCTURE_FAILED,
    BuildError: State.BUILD_FAILED,
    RunError: State.RUN_FAILED,
}


class Runner(Protocol):
    def run(self, argv: List[str], cwd: Path, deadline: Deadline, new_process_group: bool = True) -> ProcessResult: ...


class Dispatcher:
    """
    Build/run state machine: registry lookup -> workspace -> (check|build) -> run.
    Every step shares one deadline and every outcome ends up as a CodeResponse.
    """

    def __init__(
        self,
        registry: LanguageRegistry,
        workspaces: WorkspaceStore,
        runner: Optional[Runner] = None,
        timeout_s: float = 10.0,
    ):
        self.registry = registry
        self.workspaces = workspaces
        self.runner = runner or ProcessRunner()
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, s: Settings) -> "Dispatcher":
        return cls(
            registry=s.registry(),
            workspaces=WorkspaceStore(s.workspace_root),
            runner=ProcessRunner(kill_grace_s=s.kill_grace_s),
            timeout_s=s.timeout_s,
        )

    def list_languages(self) -> FrozenSet[str]:
        return self.registry.names()

    def execute(self, req: CodeRequest) -> CodeResponse:
        started = time.monotonic()
        deadline = Deadline(self.timeout_s)
        execution_id = None
        try:
            config = self.registry.resolve(req.language)
            if config is None:
                raise UnsupportedLanguage(req.language)
            with self.workspaces.session() as ws:
                execution_id = ws.execution_id
                log.info("execution.start", language=req.language, execution_id=execution_id,
                         kind=config.kind.value)
                src = self.workspaces.write_source(ws, config, req.code)
                output = self._dispatch(config, ws, src, deadline)
        except ExecutionError as e:
            resp, state = e.to_response(), _TERMINAL[type(e)]
        except Exception:
            log.exception("execution.crashed", language=req.language, execution_id=execution_id)
            resp, state = CodeResponse(error="Internal execution error"), State.INFRASTRUCTURE_FAILED
        else:
            resp, state = CodeResponse(output=decode_output(output)), State.SUCCEEDED

        log.info(
            "execution.finish",
            language=req.language,
            execution_id=execution_id,
            outcome=state.value,
            duration_s=round(time.monotonic() - started, 3),
        )
        return resp

    # ---------- state machine ----------

    def _dispatch(self, config: LanguageConfig, ws: Workspace, src: Path, deadline: Deadline) -> bytes:
        source = str(src)
        if config.kind is RecipeKind.INTERPRET:
            if config.build_args:
                # syntax check only, no artifact
                self._step([config.compiler, *substitute_source(config.build_args, source)], ws, deadline, BuildError)
            return self._step([config.run_cmd, source], ws, deadline, RunError)

        if config.kind is RecipeKind.COMPILE_ARTIFACT:
            build = [config.compiler, source, *substitute_source(config.build_args, source)]
            self._step(build, ws, deadline, BuildError)
            return self._step([str(ws.root / config.run_cmd)], ws, deadline, RunError)

        if config.kind is RecipeKind.COMPILE_NAMED_ENTRY:
            self._step([config.compiler, source], ws, deadline, BuildError)
            return self._step([config.run_cmd, config.main_class], ws, deadline, RunError)

        raise InfrastructureError(f"unknown recipe kind: {config.kind}")

    def _step(self, argv: List[str], ws: Workspace, deadline: Deadline, err: Type[ExecutionError]) -> bytes:
        res = self.runner.run(argv, ws.root, deadline, new_process_group=True)
        if not res.ok:
            raise err(describe_failure(res, deadline.timeout_s), res.output)
        return res.output
