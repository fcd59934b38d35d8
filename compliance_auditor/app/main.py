"""
FastAPI entrypoint for the compliance audit service.

This module defines the public HTTP interface: plan an audit, run it
(optionally streaming progress as server-sent events), and compare two
reports for drift.

Files arrive already discovered and read. When a server-local target
path is supplied, the service also reads its suppression config and
component manifest, and can scope the audit to a git diff. The model
backend is wired once at startup.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.responses import Response

from compliance_auditor.app.config import AuditorConfig
from compliance_auditor.app.events import MemoryQueueEventEmitter
from compliance_auditor.app.planning.diff_filter import scope_to_diff
from compliance_auditor.app.planning.manifest import (
    Manifest,
    ManifestError,
    discover_manifest,
)
from compliance_auditor.app.planning.planner import generate_plan
from compliance_auditor.app.planning.ruleset_parser import (
    RulesetParseError,
    parse_ruleset,
)
from compliance_auditor.app.reporting.renderers import (
    generate_compliance_markdown,
    generate_drift_markdown,
)
from compliance_auditor.app.schemas.compliance_report import (
    ComplianceReport,
    DiffScope,
)
from compliance_auditor.app.schemas.drift_report import DriftReport
from compliance_auditor.app.schemas.plan import AuditPlan
from compliance_auditor.app.schemas.ruleset import Ruleset
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.semantic_audit.backend import AzureOpenAIBackend
from compliance_auditor.app.semantic_audit.executor import AuditExecutor
from compliance_auditor.app.synthesis.drift import diff_reports


logger = logging.getLogger(__name__)

_background_tasks: Set[asyncio.Task] = set()


# ---------------------------------------------------------------------------
# Presentation helpers (presentation-only)
# ---------------------------------------------------------------------------

def pretty_json(data: Any) -> str:
    """
    Pretty-print JSON for human-readable output.
    """
    return json.dumps(
        data,
        ensure_ascii=False,
        allow_nan=False,
        indent=2,
        separators=(", ", ": "),
    )


class PrettyJSONResponse(Response):
    """
    Pretty-printed JSON response for human-readable console output.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return pretty_json(content).encode("utf-8")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class PlanRequest(BaseModel):
    ruleset: str = Field(..., description="Ruleset document (Markdown + front-matter)")
    files: List[SourceFile] = Field(default_factory=list)
    manifest: Optional[Manifest] = Field(
        None,
        description="Optional component map; paths relative to the target root",
    )


class AuditRequest(PlanRequest):
    token_budget: Optional[int] = Field(None, gt=0)
    target_path: Optional[str] = Field(
        None,
        description=(
            "Server-local audit root; enables suppression config, manifest "
            "discovery and incremental scoping"
        ),
    )
    diff_ref: Optional[str] = Field(
        None,
        description="Git ref for an incremental audit (requires target_path)",
    )


class DriftRequest(BaseModel):
    baseline: ComplianceReport
    current: ComplianceReport


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Compliance Auditor Service",
    description="Plans and executes LLM-backed compliance audits of source trees",
    version="0.1.0",
)


# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------

@app.on_event("startup")
def startup_event() -> None:
    """
    Read configuration and wire the model backend.

    With MODEL_PROVIDER=disabled only planning and drift are served.
    """
    config = AuditorConfig.from_env()

    backend = None
    if config.MODEL_PROVIDER == "azure_openai":
        backend = AzureOpenAIBackend(
            endpoint=config.AZURE_OPENAI_ENDPOINT,
            deployment=config.AZURE_OPENAI_DEPLOYMENT,
            api_version=config.AZURE_OPENAI_API_VERSION,
            timeout_seconds=config.BACKEND_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("No model backend configured; /audit endpoints are disabled")

    app.state.config = config
    app.state.backend = backend


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_ruleset(text: str) -> Ruleset:
    try:
        return parse_ruleset(text)
    except RulesetParseError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _resolve_manifest(
    manifest: Optional[Manifest],
    target_path: Optional[str],
) -> Optional[Manifest]:
    if manifest is not None or target_path is None:
        return manifest
    try:
        return discover_manifest(target_path)
    except (ManifestError, OSError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _prepare_audit(
    request: AuditRequest,
) -> Tuple[Ruleset, AuditPlan, Sequence[SourceFile], Optional[DiffScope]]:
    """
    Parse, scope and plan an audit request.

    IMPORTANT:
    - diff_ref without target_path is rejected
    - Incremental scoping happens before planning
    """
    if request.diff_ref and not request.target_path:
        raise HTTPException(
            status_code=400,
            detail="diff_ref requires target_path",
        )

    ruleset = _parse_ruleset(request.ruleset)
    manifest = _resolve_manifest(request.manifest, request.target_path)

    files: Sequence[SourceFile] = request.files
    diff: Optional[DiffScope] = None
    if request.diff_ref and request.target_path:
        files, diff = scope_to_diff(
            files,
            request.target_path,
            ref=request.diff_ref,
            manifest=manifest,
        )

    plan = generate_plan(
        files,
        ruleset,
        manifest=manifest,
        target_path=request.target_path or ".",
    )
    return ruleset, plan, files, diff


def _build_executor(request: AuditRequest) -> AuditExecutor:
    backend = getattr(app.state, "backend", None)
    if backend is None:
        raise HTTPException(
            status_code=503,
            detail="No model backend is configured",
        )

    config: AuditorConfig = app.state.config

    return AuditExecutor(
        backend=backend,
        model=config.MODEL_NAME,
        max_tokens=config.MAX_TOKENS,
        concurrency=config.CONCURRENCY,
        token_budget=request.token_budget or config.TOKEN_BUDGET,
    )


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------

@app.post(
    "/plan",
    response_model=AuditPlan,
    response_class=PrettyJSONResponse,
    summary="Generate a three-wave audit plan",
)
def plan_audit(request: PlanRequest) -> AuditPlan:
    ruleset = _parse_ruleset(request.ruleset)
    return generate_plan(request.files, ruleset, manifest=request.manifest)


async def _execute(request: AuditRequest) -> ComplianceReport:
    executor = _build_executor(request)
    ruleset, plan, files, diff = _prepare_audit(request)

    return await executor.run(
        plan=plan,
        files=files,
        ruleset=ruleset,
        audit_id=str(uuid4()),
        target_path=request.target_path,
        diff=diff,
    )


@app.post(
    "/audit",
    response_model=ComplianceReport,
    response_class=PrettyJSONResponse,
    summary="Plan and execute a compliance audit",
)
async def run_audit(request: AuditRequest) -> ComplianceReport:
    return await _execute(request)


@app.post(
    "/audit/markdown",
    response_class=PlainTextResponse,
    summary="Plan and execute a compliance audit (Markdown view)",
)
async def run_audit_markdown(request: AuditRequest) -> str:
    return generate_compliance_markdown(await _execute(request))


# ---------------------------------------------------------------------------
# Streaming Audit (SSE)
# ---------------------------------------------------------------------------

@app.post(
    "/audit/stream",
    summary="Plan and execute a compliance audit (streaming progress)",
)
async def run_audit_stream(request: AuditRequest):
    """
    Execute an audit while streaming progress events.

    This endpoint is observational only:
    - Client disconnects do NOT cancel the audit
    - The final `complete` event carries the ComplianceReport
    """
    executor = _build_executor(request)
    ruleset, plan, files, diff = _prepare_audit(request)

    audit_id = str(uuid4())
    emitter = MemoryQueueEventEmitter()

    # --------------------------------------------------------------
    # Background audit execution
    # --------------------------------------------------------------
    async def run_audit_task() -> None:
        try:
            await executor.run(
                plan=plan,
                files=files,
                ruleset=ruleset,
                audit_id=audit_id,
                emitter=emitter,
                target_path=request.target_path,
                diff=diff,
            )
        except Exception:
            # Executor already emitted the terminal failed event
            logger.exception("Streaming audit %s failed", audit_id)

    task = asyncio.create_task(run_audit_task())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    # --------------------------------------------------------------
    # SSE event stream
    # --------------------------------------------------------------
    async def event_stream():
        try:
            async for event in emitter.stream():
                yield event.to_sse_payload()
        except asyncio.CancelledError:
            # Client disconnected; audit continues
            pass

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------

@app.post(
    "/drift",
    response_model=DriftReport,
    response_class=PrettyJSONResponse,
    summary="Compare two compliance reports",
)
def drift(request: DriftRequest) -> DriftReport:
    return diff_reports(request.baseline, request.current)


@app.post(
    "/drift/markdown",
    response_class=PlainTextResponse,
    summary="Compare two compliance reports (Markdown view)",
)
def drift_markdown(request: DriftRequest) -> str:
    return generate_drift_markdown(
        diff_reports(request.baseline, request.current)
    )


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    return JSONResponse(
        content={
            "status": "ok",
            "service": "compliance-auditor",
            "backend": "configured" if getattr(app.state, "backend", None) else "disabled",
        }
    )
