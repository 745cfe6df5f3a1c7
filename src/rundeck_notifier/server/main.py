"""
HTTP front-end for the notifier.

A CI server that cannot run the CLI posts the build description to /notify;
the site checks back the configuration screens. Serve with any ASGI server,
e.g. `uvicorn rundeck_notifier.server.main:app`.
"""

from __future__ import annotations

import io
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..build import BuildContext
from ..config import ConfigurationError, RemoteSite, SiteRegistry, StepConfig, load_registry, resolve_client
from ..notifier import notify as run_notifier
from ..rundeck.api_client import RundeckClient
from ..settings import CONFIG_PATH
from ..ui.console import Console
from ..validation import check_connection, check_job_identifier, check_regex, check_url

app = FastAPI(title="Rundeck Notifier")

# -------------------- Schemas --------------------

class SiteResponse(BaseModel):
    name: str
    url: str
    auth: str

class ValidationResponse(BaseModel):
    ok: bool
    message: str
    url: str = ""

class ChangePayload(BaseModel):
    author: str = "unknown"
    message: str = ""

class UpstreamPayload(BaseModel):
    display_name: str
    changes: list[ChangePayload] = Field(default_factory=list)

class BuildPayload(BaseModel):
    display_name: str = "build"
    result: str = "SUCCESS"
    changes: list[ChangePayload] = Field(default_factory=list)
    upstream: list[UpstreamPayload] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    artifacts: list[str] = Field(default_factory=list)

class NotifyRequest(BaseModel):
    step: StepConfig
    build: BuildPayload = Field(default_factory=BuildPayload)

class NotifyResponse(BaseModel):
    verdict: str
    ok: bool
    notified: bool
    deferred: bool
    message: str
    execution: dict[str, Any] | None
    build_result: str
    badges: list[dict[str, str]]
    log: list[str]

# -------------------- Dependencies --------------------

_registry: SiteRegistry | None = None

def get_registry() -> SiteRegistry:
    global _registry
    if _registry is None:
        try:
            _registry = load_registry(CONFIG_PATH)
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))
    return _registry

def get_client_factory() -> Callable[[RemoteSite], RundeckClient]:
    return resolve_client

def _site(registry: SiteRegistry, name: str) -> RemoteSite:
    try:
        return registry.get(name)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))

def _client(site: RemoteSite, make_client: Callable[[RemoteSite], RundeckClient]) -> RundeckClient:
    try:
        return make_client(site)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=f"Rundeck configuration is not valid ! {e}")

# -------------------- Endpoints --------------------

@app.get("/sites", response_model=list[SiteResponse])
def list_sites(registry: SiteRegistry = Depends(get_registry)):
    return [SiteResponse(name=s.name, url=s.normalized_url, auth=s.auth_kind) for s in registry]

@app.post("/sites/{name}/test-connection", response_model=ValidationResponse)
def test_connection(
    name: str,
    registry: SiteRegistry = Depends(get_registry),
    make_client: Callable[[RemoteSite], RundeckClient] = Depends(get_client_factory),
):
    site = _site(registry, name)
    result = check_connection(site, client=_client(site, make_client))
    return ValidationResponse(ok=result.ok, message=result.message, url=result.url)

@app.get("/sites/{name}/check-job", response_model=ValidationResponse)
def check_job(
    name: str,
    identifier: str = "",
    registry: SiteRegistry = Depends(get_registry),
    make_client: Callable[[RemoteSite], RundeckClient] = Depends(get_client_factory),
):
    site = _site(registry, name)
    result = check_job_identifier(identifier, site, client=_client(site, make_client))
    return ValidationResponse(ok=result.ok, message=result.message, url=result.url)

@app.get("/checks/url", response_model=ValidationResponse)
def check_site_url(value: str = ""):
    result = check_url(value)
    return ValidationResponse(ok=result.ok, message=result.message)

@app.get("/checks/regex", response_model=ValidationResponse)
def check_pattern(value: str = ""):
    result = check_regex(value)
    return ValidationResponse(ok=result.ok, message=result.message)

@app.post("/notify", response_model=NotifyResponse)
def notify(
    req: NotifyRequest,
    registry: SiteRegistry = Depends(get_registry),
    make_client: Callable[[RemoteSite], RundeckClient] = Depends(get_client_factory),
):
    # Blocking on purpose: with wait_for_completion the request lasts as long as the execution.
    site = _site(registry, req.step.site)

    try:
        build = BuildContext.from_dict(req.build.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    log = io.StringIO()
    console = Console(out=log, err=log)
    outcome = run_notifier(req.step, site, build, console=console, make_client=make_client)
    final = outcome.apply_to(build)

    return NotifyResponse(
        **outcome.to_dict(),
        build_result=final.value,
        badges=[b.to_dict() for b in build.badges],
        log=log.getvalue().splitlines(),
    )
