from __future__ import annotations
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from pydantic import BaseModel

from ..core.models import CodeRequest, CodeResponse
from ..logging import setup_logging
from ..services.dispatcher import Dispatcher
from ..settings import Settings, load_settings


def create_app(settings: Settings | None = None, dispatcher: Dispatcher | None = None) -> FastAPI:
    s = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log = setup_logging(s.log_level)
        app.state.dispatcher = dispatcher or Dispatcher.from_settings(s)
        if s.sweep_on_startup:
            app.state.dispatcher.workspaces.sweep_stale(s.stale_after_s)
        log.info("service.ready", languages=sorted(app.state.dispatcher.list_languages()))
        yield

    app = FastAPI(title="execbox", lifespan=lifespan)

    # --------- Endpoints ---------

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/languages", response_model=LanguagesRes)
    def list_languages(d: Dispatcher = Depends(get_dispatcher)):
        return LanguagesRes(languages=sorted(d.list_languages()))

    # sync on purpose: FastAPI runs it in the threadpool, one thread per request
    @app.post("/execute", response_model=ExecuteRes, response_model_exclude_none=True)
    def execute(req: CodeRequest, d: Dispatcher = Depends(get_dispatcher)):
        return ExecuteRes.from_response(d.execute(req))

    return app


class LanguagesRes(BaseModel):
    languages: List[str]


class ExecuteRes(BaseModel):
    output: str = ""
    error: Optional[str] = None  # omitted from the body when empty

    @classmethod
    def from_response(cls, r: CodeResponse) -> "ExecuteRes":
        return cls(output=r.output, error=r.error or None)


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def main() -> None:
    import uvicorn

    s = load_settings()
    uvicorn.run(create_app(s), host=s.host, port=s.port)


if __name__ == "__main__":
    main()
