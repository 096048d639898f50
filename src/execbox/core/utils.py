from __future__ import annotations
import secrets, time
from typing import Iterable, List

WORKSPACE_PREFIX = "execution_"
SOURCE_PLACEHOLDER = "{}"


def new_execution_id() -> str:
    # nanosecond arrival time + random suffix, so two requests in the same tick still differ
    return f"{time.time_ns()}-{secrets.token_hex(4)}"


def substitute_source(args: Iterable[str], source_path: str) -> List[str]:
    return [a.replace(SOURCE_PLACEHOLDER, source_path) for a in args]


def decode_output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")
