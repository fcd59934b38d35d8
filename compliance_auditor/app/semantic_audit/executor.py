"""
Wave executor.

Runs an audit plan to completion against an injected model backend.

Per-task states (tracked here, never on the task record):

    planned -> skipped (budget)
    planned -> running -> completed | failed

IMPORTANT:
- Waves run strictly in order: 1 -> 2 -> 3
- Within a wave, admitted tasks run concurrently, bounded by `concurrency`
- The budget filter runs once per wave, before any task in it starts
- A failed task is terminal for that task only; siblings and the run continue
- No retries at this layer
- Wave 3 (synthesis) runs in-process without a backend call
- Progress events are the only observation surface
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from compliance_auditor.app.events import (
    AuditEvent,
    AuditEventEmitter,
    AuditEventType,
    NullEventEmitter,
)
from compliance_auditor.app.schemas.compliance_report import (
    ComplianceReport,
    DiffScope,
)
from compliance_auditor.app.schemas.findings import AuditTaskResult
from compliance_auditor.app.schemas.plan import AuditPlan, AuditTask
from compliance_auditor.app.schemas.ruleset import Ruleset
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.semantic_audit.backend import (
    BackendOptions,
    ModelBackend,
)
from compliance_auditor.app.semantic_audit.output_schema import AUDIT_FINDINGS_SCHEMA
from compliance_auditor.app.semantic_audit.prompts import generate_prompt
from compliance_auditor.app.semantic_audit.response_parser import parse_audit_response
from compliance_auditor.app.synthesis.synthesizer import synthesize_report
from compliance_auditor.app.utils.tokens import estimate_tokens


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_CONCURRENCY = 5

SKIP_REASON_BUDGET = "budget-exceeded"


class _RunState:
    """
    Admission bookkeeping for one run.

    Touched only between awaits (budget filtering, completion callbacks),
    so concurrent task bodies never race on it.
    """

    def __init__(self) -> None:
        self.results: List[AuditTaskResult] = []
        self.failed_task_ids: Set[str] = set()
        self.skipped_task_ids: Set[str] = set()
        self.tokens_consumed = 0


class AuditExecutor:
    """
    Executes audit plans wave by wave.

    The executor owns:
    - wave ordering and bounded concurrency
    - budget admission control
    - per-task failure containment
    - progress emission

    It does NOT own:
    - backend timeouts or retries
    - finding semantics (response_parser, synthesis)
    """

    def __init__(
        self,
        *,
        backend: ModelBackend,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        concurrency: int = DEFAULT_CONCURRENCY,
        token_budget: Optional[int] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if token_budget is not None and token_budget <= 0:
            raise ValueError("token_budget must be positive when set")

        self._backend = backend
        self._model = model
        self._max_tokens = max_tokens
        self._concurrency = concurrency
        self._token_budget = token_budget

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def run(
        self,
        *,
        plan: AuditPlan,
        files: Sequence[SourceFile],
        ruleset: Ruleset,
        audit_id: Optional[str] = None,
        emitter: Optional[AuditEventEmitter] = None,
        target_path: Optional[str] = None,
        diff: Optional[DiffScope] = None,
    ) -> ComplianceReport:
        emitter = emitter or NullEventEmitter()
        audit_id = audit_id or str(uuid4())

        started_at = datetime.now(timezone.utc)
        state = _RunState()
        files_by_path: Dict[str, SourceFile] = {f.relative_path: f for f in files}

        try:
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.PLAN_READY,
                    details={"plan": plan},
                )
            )

            for wave, tasks in ((1, plan.waves.wave1), (2, plan.waves.wave2)):
                await self._run_wave(
                    wave=wave,
                    tasks=tasks,
                    files_by_path=files_by_path,
                    ruleset=ruleset,
                    state=state,
                    audit_id=audit_id,
                    emitter=emitter,
                )

            # ----------------------------------------------------------
            # Wave 3: synthesis (in-process)
            # ----------------------------------------------------------
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.WAVE_STARTED,
                    details={"wave": 3, "task_count": 1},
                )
            )

            report = synthesize_report(
                plan=plan,
                ruleset=ruleset,
                files=files,
                results=state.results,
                failed_task_ids=state.failed_task_ids,
                skipped_task_ids=state.skipped_task_ids,
                started_at=started_at,
                target_path=target_path,
                diff=diff,
                token_budget=self._token_budget,
            )

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.WAVE_COMPLETED,
                    details={"wave": 3, "results": []},
                )
            )

            logger.info(
                "Audit %s complete: %s finding(s), %s task(s) executed, "
                "%s failed, %s skipped",
                audit_id,
                report.summary.total,
                report.metadata.tasks_executed,
                report.metadata.tasks_failed,
                report.metadata.tasks_skipped,
            )

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.AUDIT_COMPLETED,
                    details={"report": report},
                )
            )

            return report

        except Exception as exc:
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.AUDIT_FAILED,
                    details={
                        "error": str(exc),
                        "exception_type": type(exc).__name__,
                    },
                )
            )
            raise

    # ------------------------------------------------------------------
    # Admission control
    # ------------------------------------------------------------------
    def admit(
        self,
        tasks: Sequence[AuditTask],
        tokens_consumed: int = 0,
    ) -> Tuple[List[AuditTask], List[AuditTask]]:
        """
        Split priority-ordered tasks into (admitted, skipped).

        Tasks are walked in order; a task whose estimate would push the
        running total over the budget is skipped and not charged, so a
        later, cheaper task may still be admitted.
        """
        if self._token_budget is None:
            return list(tasks), []

        admitted: List[AuditTask] = []
        skipped: List[AuditTask] = []
        running_total = tokens_consumed

        for task in tasks:
            if running_total + task.estimated_tokens > self._token_budget:
                logger.debug(
                    "Skipping %s: %s + %s exceeds budget %s",
                    task.id,
                    running_total,
                    task.estimated_tokens,
                    self._token_budget,
                )
                skipped.append(task)
                continue

            running_total += task.estimated_tokens
            admitted.append(task)

        return admitted, skipped

    # ------------------------------------------------------------------
    # Waves
    # ------------------------------------------------------------------
    async def _run_wave(
        self,
        *,
        wave: int,
        tasks: Sequence[AuditTask],
        files_by_path: Dict[str, SourceFile],
        ruleset: Ruleset,
        state: _RunState,
        audit_id: str,
        emitter: AuditEventEmitter,
    ) -> None:
        if not tasks:
            return

        logger.info("Wave %s starting with %s task(s)", wave, len(tasks))

        await emitter.emit(
            AuditEvent(
                audit_id=audit_id,
                event_type=AuditEventType.WAVE_STARTED,
                details={"wave": wave, "task_count": len(tasks)},
            )
        )

        admitted, skipped = self.admit(tasks, state.tokens_consumed)

        for task in skipped:
            state.skipped_task_ids.add(task.id)
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.TASK_SKIPPED,
                    details={"task": task, "reason": SKIP_REASON_BUDGET},
                )
            )

        semaphore = asyncio.Semaphore(self._concurrency)
        wave_results: List[AuditTaskResult] = []

        async def run_one(task: AuditTask) -> None:
            async with semaphore:
                await emitter.emit(
                    AuditEvent(
                        audit_id=audit_id,
                        event_type=AuditEventType.TASK_STARTED,
                        details={"task": task},
                    )
                )

                try:
                    result = await self._execute_task(
                        task,
                        [files_by_path[p] for p in task.files if p in files_by_path],
                        ruleset,
                    )
                except Exception as exc:
                    state.failed_task_ids.add(task.id)
                    logger.warning(
                        "Task %s failed: %s: %s",
                        task.id,
                        type(exc).__name__,
                        exc,
                    )
                    await emitter.emit(
                        AuditEvent(
                            audit_id=audit_id,
                            event_type=AuditEventType.TASK_FAILED,
                            details={
                                "task": task,
                                "error": str(exc),
                                "exception_type": type(exc).__name__,
                            },
                        )
                    )
                    return

                wave_results.append(result)
                state.tokens_consumed += result.tokens_used

                await emitter.emit(
                    AuditEvent(
                        audit_id=audit_id,
                        event_type=AuditEventType.TASK_COMPLETED,
                        details={"task": task, "result": result},
                    )
                )

        await asyncio.gather(*(run_one(task) for task in admitted))

        state.results.extend(wave_results)

        logger.info(
            "Wave %s complete: %s completed, %s skipped",
            wave,
            len(wave_results),
            len(skipped),
        )

        await emitter.emit(
            AuditEvent(
                audit_id=audit_id,
                event_type=AuditEventType.WAVE_COMPLETED,
                details={"wave": wave, "results": wave_results},
            )
        )

    # ------------------------------------------------------------------
    # Single task
    # ------------------------------------------------------------------
    async def _execute_task(
        self,
        task: AuditTask,
        files: Sequence[SourceFile],
        ruleset: Ruleset,
    ) -> AuditTaskResult:
        prompt = generate_prompt(task, files, ruleset)

        started = time.monotonic()
        response = await self._backend.complete(
            system_prompt=prompt.system_prompt,
            user_prompt=prompt.user_prompt,
            options=BackendOptions(
                model=self._model,
                max_tokens=self._max_tokens,
                json_schema=AUDIT_FINDINGS_SCHEMA,
            ),
        )
        duration_ms = int((time.monotonic() - started) * 1000)

        if response.usage is not None:
            tokens_used = response.usage.total_tokens
        else:
            tokens_used = estimate_tokens(
                prompt.system_prompt + prompt.user_prompt + response.text
            )

        return parse_audit_response(
            response.text,
            task,
            model=self._model,
            tokens_used=tokens_used,
            duration_ms=duration_ms,
            structured=response.structured,
        )
