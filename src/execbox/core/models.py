from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class RecipeKind(str, Enum):
    INTERPRET = "interpret"                      # run source directly, optional syntax check
    COMPILE_ARTIFACT = "compile_artifact"        # compile, then run the produced binary
    COMPILE_NAMED_ENTRY = "compile_named_entry"  # compile, then run an entry class by name


@dataclass(frozen=True)
class LanguageConfig:
    kind: RecipeKind
    compiler: str
    filename: str           # source file name inside the workspace (Main.java, main.py, ...)
    run_cmd: str
    build_args: Tuple[str, ...] = ()
    main_class: Optional[str] = None


@dataclass(frozen=True)
class Workspace:
    execution_id: str
    root: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ProcessResult:
    output: bytes
    returncode: Optional[int]
    timed_out: bool = False
    error: Optional[str] = None   # spawn failure text, process never ran

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out and self.returncode == 0


class CodeRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    language: str


class CodeResponse(BaseModel):
    output: str = ""
    error: str = ""
