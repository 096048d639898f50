from __future__ import annotations
import signal
from typing import Optional

from .models import CodeResponse, ProcessResult
from .utils import decode_output


class ConfigError(ValueError):
    """Bad recipe or settings file; raised at start-up, never per request."""


class ExecutionError(Exception):
    """
    Base of the per-request error taxonomy. Each subclass knows how to render
    itself into the public {output, error} response.
    """
    prefix = ""

    def __init__(self, cause: str, output: bytes = b""):
        super().__init__(cause)
        self.cause = cause
        self.output = output

    def message(self) -> str:
        return f"{self.prefix}{self.cause}\n{decode_output(self.output)}"

    def to_response(self) -> CodeResponse:
        return CodeResponse(error=self.message())


class UnsupportedLanguage(ExecutionError):
    def __init__(self, language: str):
        super().__init__("Unsupported language")
        self.language = language

    def message(self) -> str:
        return self.cause


class InfrastructureError(ExecutionError):
    # no process ever ran, so there is no output to append
    def message(self) -> str:
        return self.cause


class BuildError(ExecutionError):
    prefix = "Compilation error: "


class RunError(ExecutionError):
    prefix = "Execution error: "


def describe_failure(res: ProcessResult, timeout_s: Optional[float] = None) -> str:
    """Render the cause text of a failed step: exit status, signal, timeout or spawn error."""
    if res.error is not None:
        return res.error
    if res.timed_out:
        limit = f" after {timeout_s:g}s" if timeout_s is not None else ""
        return f"timed out{limit}: signal: killed"
    rc = res.returncode
    if rc is not None and rc < 0:
        try:
            name = signal.Signals(-rc).name
        except ValueError:
            name = str(-rc)
        return f"signal: {name}"
    return f"exit status {rc}"
