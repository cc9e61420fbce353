"""
Doctor Orchestrator
===================

Runs registered checks stage by stage and summarizes the outcome.

Stages run one after another in pipeline order. Checks within a stage run
concurrently on a bounded thread pool and every dispatched check is
awaited; there is no cancellation in the middle of a stage. After the
environment stage, any failure halts the pipeline because later stages
depend on a working interpreter and CLI.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Mapping, Optional

from rich.console import Console

from aws_doctor.errors import DiagnosticError
from aws_doctor.logging import DoctorLogger, EventType
from aws_doctor.models import (
    STAGE_ORDER,
    Check,
    CheckResult,
    CheckStage,
    CheckStatus,
    DiagnosticSummary,
    DoctorContext,
)
from aws_doctor.progress import StageProgress
from aws_doctor.registry import CheckRegistry

logger = logging.getLogger(__name__)

EXECUTION_FAILED_REMEDIATION = "Review system logs and retry the operation"

# Stages whose failures stop the pipeline
FAIL_FAST_STAGES = (CheckStage.ENVIRONMENT,)


def create_diagnostic_summary(
    results: Mapping[str, CheckResult], execution_time: float
) -> DiagnosticSummary:
    """Aggregate results into a summary.

    Pure: the same ``(results, execution_time)`` always yields an equal
    summary. Overall status is fail if any result failed, warn if any
    warned, else pass.
    """
    statuses = [result.status for result in results.values()]
    passed = statuses.count(CheckStatus.PASS)
    warnings = statuses.count(CheckStatus.WARN)
    failed = statuses.count(CheckStatus.FAIL)

    if failed:
        overall = CheckStatus.FAIL
    elif warnings:
        overall = CheckStatus.WARN
    else:
        overall = CheckStatus.PASS

    return DiagnosticSummary(
        total_checks=len(statuses),
        passed_checks=passed,
        warning_checks=warnings,
        failed_checks=failed,
        overall_status=overall,
        execution_time=execution_time,
        results=dict(results),
    )


class DoctorService:
    """Staged, concurrent check runner."""

    def __init__(
        self,
        registry: CheckRegistry,
        max_concurrency: int = 5,
        progress_enabled: bool = False,
        event_log: Optional[DoctorLogger] = None,
        console: Optional[Console] = None,
    ):
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency < 1:
            raise DiagnosticError(
                f"max_concurrency must be a positive integer, got {max_concurrency!r}"
            )
        self.registry = registry
        self.max_concurrency = max_concurrency
        self.progress_enabled = progress_enabled
        self.event_log = event_log
        self.console = console

    def _log(self, event_type: EventType, **data) -> None:
        if self.event_log is not None:
            self.event_log.log_event(event_type, **data)

    def _execute_check(self, check: Check, context: DoctorContext) -> CheckResult:
        """Run one check; never raises.

        Exceptions become fail results. Duration is measured either way.
        """
        start = time.perf_counter()
        try:
            result = check.execute(context)
            if not isinstance(result, CheckResult):
                raise DiagnosticError(
                    f"Check returned {type(result).__name__} instead of CheckResult",
                    check_id=check.id,
                    stage=check.stage.value,
                )
        except Exception as e:
            logger.debug(f"Check {check.id} raised {type(e).__name__}: {e}")
            result = CheckResult(
                status=CheckStatus.FAIL,
                message=f"Check execution failed: {e}",
                details={
                    "checkId": check.id,
                    "stage": check.stage.value,
                    "errorType": type(e).__name__,
                },
                remediation=EXECUTION_FAILED_REMEDIATION,
            )
        duration = (time.perf_counter() - start) * 1000
        return result.with_duration(duration)

    def execute_stage(self, stage: CheckStage, context: DoctorContext) -> dict[str, CheckResult]:
        """Run every check registered for ``stage``.

        Returns:
            Map of check id to result with exactly one entry per check,
            in registration order.
        """
        checks = self.registry.get_checks_for_stage(stage)
        if not checks:
            return {}

        workers = min(self.max_concurrency, len(checks))
        completed: dict[str, CheckResult] = {}

        with StageProgress(stage, checks, console=self.console, enabled=self.progress_enabled) as progress:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix=f"doctor-{stage.value}"
            ) as executor:
                futures = {
                    executor.submit(self._execute_check, check, context): check
                    for check in checks
                }
                for future in as_completed(futures):
                    check = futures[future]
                    result = future.result()
                    completed[check.id] = result
                    progress.complete(check, result)
                    if self.event_log is not None:
                        self.event_log.log_check_result(
                            check.id, stage.value, result.status.value,
                            result.message, result.duration,
                        )

        return {check.id: completed[check.id] for check in checks}

    def run_diagnostics(self, context: DoctorContext) -> DiagnosticSummary:
        """Run all stages in pipeline order and summarize.

        Stops after a fail-fast stage that produced any failure; later
        stages are never fetched from the registry.
        """
        start = time.perf_counter()
        results: dict[str, CheckResult] = {}

        for stage in STAGE_ORDER:
            self._log(EventType.STAGE_START, stage=stage.value)
            stage_results = self.execute_stage(stage, context)
            results.update(stage_results)

            failed = [cid for cid, r in stage_results.items() if r.status == CheckStatus.FAIL]
            self._log(
                EventType.STAGE_COMPLETE,
                stage=stage.value,
                checks=len(stage_results),
                failed=len(failed),
            )
            logger.debug(f"Stage {stage.value}: {len(stage_results)} checks, {len(failed)} failed")

            if failed and stage in FAIL_FAST_STAGES:
                self._log(EventType.PIPELINE_HALTED, stage=stage.value, failed_checks=failed)
                logger.debug(f"Halting pipeline after {stage.value}")
                break

        execution_time = (time.perf_counter() - start) * 1000
        return self.create_diagnostic_summary(results, execution_time)

    def run_category(self, stage: CheckStage, context: DoctorContext) -> DiagnosticSummary:
        """Run a single stage and summarize it."""
        start = time.perf_counter()
        self._log(EventType.STAGE_START, stage=stage.value)
        results = self.execute_stage(stage, context)
        self._log(EventType.STAGE_COMPLETE, stage=stage.value, checks=len(results))
        execution_time = (time.perf_counter() - start) * 1000
        return self.create_diagnostic_summary(results, execution_time)

    @staticmethod
    def create_diagnostic_summary(
        results: Mapping[str, CheckResult], execution_time: float
    ) -> DiagnosticSummary:
        return create_diagnostic_summary(results, execution_time)
