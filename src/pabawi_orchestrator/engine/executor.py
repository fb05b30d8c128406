"""Executor for applying compiled catalogs to a resource applier.

Resources are applied strictly in catalog order. A failed resource halts
the run only when it is fatal; dependents of a failed resource are skipped.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from ..appliers.base import ResourceApplier
from ..errors import ResourceError
from ..utils.audit_log import AuditTrail
from ..utils.logging_config import timed_section
from ..utils.retry import with_retry
from .schema import (
    Catalog,
    CatalogEntry,
    ExecuteOptions,
    Outcome,
    OutcomeStatus,
    ResourceResult,
    RunReport,
)

logger = logging.getLogger(__name__)


class ConvergenceExecutor:
    """Apply catalogs and build run reports."""

    def __init__(self, audit_trail: Optional[AuditTrail] = None):
        """
        Initialize executor.

        Args:
            audit_trail: Where to record each resource outcome (optional)
        """
        self.audit_trail = audit_trail

    def apply(
        self,
        catalog: Catalog,
        applier: ResourceApplier,
        options: Optional[ExecuteOptions] = None,
    ) -> RunReport:
        """
        Apply every resource of a catalog in order.

        Args:
            catalog: Compiled catalog
            applier: Applier that converges individual resources
            options: Execution options (dry_run, retry waits, audit context)

        Returns:
            RunReport with one result per applied or skipped resource
        """
        options = options or ExecuteOptions()
        run_id = uuid.uuid4().hex[:12]
        report = RunReport(
            dry_run=options.dry_run,
            warnings=list(catalog.warnings),
            unresolved=list(catalog.unresolved),
            started_at=datetime.now(timezone.utc),
        )

        changed: set[str] = set()
        blocked: set[str] = set()

        prefix = "DRY RUN: " if options.dry_run else ""
        logger.info(f"{prefix}Applying {len(catalog)} resources (run {run_id})")

        with timed_section("apply", run_id, resources=len(catalog)):
            for index, entry in enumerate(catalog.entries):
                result = self._apply_entry(entry, applier, options, changed, blocked)
                self._record(report, result, run_id, options)

                if result.status == OutcomeStatus.CHANGED:
                    changed.add(result.resource_id)
                    continue
                if result.status not in (OutcomeStatus.FAILED, OutcomeStatus.SKIPPED):
                    continue

                blocked.add(result.resource_id)
                if result.status == OutcomeStatus.SKIPPED:
                    continue

                if report.first_failure is None:
                    report.first_failure = result

                if result.fatal:
                    report.halted = True
                    report.not_applied = [e.id for e in catalog.entries[index + 1:]]
                    logger.error(
                        f"Fatal failure of {result.resource_id}: {result.message}; "
                        f"halting with {len(report.not_applied)} resources not applied"
                    )
                    break

                logger.warning(f"Non-fatal failure of {result.resource_id}: {result.message}")

        report.finished_at = datetime.now(timezone.utc)
        logger.info(report.summary().splitlines()[0])
        return report

    def _apply_entry(
        self,
        entry: CatalogEntry,
        applier: ResourceApplier,
        options: ExecuteOptions,
        changed: set[str],
        blocked: set[str],
    ) -> ResourceResult:
        """Converge one resource, or skip it when a prerequisite did not converge."""
        decl = entry.resource

        blockers = [target for target in decl.follows if target in blocked]
        if blockers:
            return ResourceResult(
                resource_id=decl.id,
                kind=decl.kind,
                owner=entry.owner,
                status=OutcomeStatus.SKIPPED,
                message=f"Skipped: {blockers[0]} did not converge",
                fatal=decl.is_fatal,
                attempts=0,
            )

        refresh = any(target in changed for target in decl.subscribe)
        outcome, attempts = self._converge(entry, applier, options, refresh)

        return ResourceResult(
            resource_id=decl.id,
            kind=decl.kind,
            owner=entry.owner,
            status=outcome.status,
            message=outcome.message,
            fatal=decl.is_fatal,
            attempts=attempts,
        )

    def _converge(
        self,
        entry: CatalogEntry,
        applier: ResourceApplier,
        options: ExecuteOptions,
        refresh: bool,
    ) -> tuple[Outcome, int]:
        """Call the applier, retrying transient errors."""
        decl = entry.resource
        attempts = 0

        def attempt() -> Outcome:
            nonlocal attempts
            attempts += 1
            return applier.apply(decl, noop=options.dry_run, refresh=refresh)

        call = with_retry(
            max_attempts=max(1, decl.retries),
            min_wait=options.retry_min_wait,
            max_wait=options.retry_max_wait,
        )(attempt)

        try:
            outcome = call()
        except ResourceError as e:
            outcome = Outcome.failed(e.message)
        except Exception as e:
            logger.exception(f"Applier raised while converging {decl.id}: {e}")
            outcome = Outcome.failed(f"{type(e).__name__}: {e}")

        if not isinstance(outcome, Outcome):
            outcome = Outcome.failed(
                f"Applier returned {type(outcome).__name__} instead of Outcome"
            )

        if outcome.status == OutcomeStatus.CHANGED:
            logger.info(f"{decl.id}: {outcome.message or 'changed'}")
        elif outcome.status == OutcomeStatus.UNCHANGED:
            logger.debug(f"{decl.id}: unchanged")

        return outcome, attempts

    def _record(
        self,
        report: RunReport,
        result: ResourceResult,
        run_id: str,
        options: ExecuteOptions,
    ) -> None:
        report.results.append(result)
        if self.audit_trail is None:
            return
        try:
            self.audit_trail.record(
                result,
                run_id=run_id,
                dry_run=options.dry_run,
                context=options.audit_context,
                user=options.user,
            )
        except OSError as e:
            logger.warning(f"Failed to write audit log: {e}")
