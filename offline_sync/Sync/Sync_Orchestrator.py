# offline_sync/Sync/Sync_Orchestrator.py
# Description: Drives push / conflict resolution / pull cycles for one sync session.
#
"""
Sync_Orchestrator.py
--------------------

One cycle at a time:

    IDLE -> PUSHING -> RESOLVING_CONFLICTS -> PULLING -> IDLE

`push()` sends every pending operation in queue order. Accepted operations are
settled in the store; rejected ones come back as PushFailures and are handled
strictly in the order the transport reported them. Each failure is classified,
a decision is awaited if the policy needs one, and the resulting Resolution is
applied in its own store transaction before the next failure is looked at.

A transport failure aborts the cycle with the queue untouched and is raised to
the caller after being reported. Nothing is retried here.
"""
# Imports
import asyncio
import time
from typing import Callable, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from offline_sync.Constants import MSG_PULL_FAILED, MSG_PUSH_COMPLETED_WITH_CONFLICTS, MSG_PUSH_FAILED
from offline_sync.Metrics.metrics_logger import MetricsLogger
from offline_sync.Sync.conflict_classifier import classify, resume_with_answer
from offline_sync.Sync.exceptions import UnhandledConflictError
from offline_sync.Sync.sync_models import (
    ChangeKind, Discard, DiscardAndAdopt, Fail, NeedsDecision, OperationKind, PendingOperation, PullQuery,
    PushFailure, PushStatus, Reapply, Resolution, ResolvedConflict, SyncState, SyncSummary,
)
from offline_sync.Sync.sync_session import SyncSession
#
########################################################################################################################
#
# Classes:

Reporter = Callable[[str], None]


class SyncOrchestrator:
    """Runs serialized sync cycles against a SyncSession and reports progress strings."""

    def __init__(self, session: SyncSession, reporter: Optional[Reporter] = None,
                 metrics: Optional[MetricsLogger] = None):
        self.session = session
        self._reporter = reporter
        self._metrics = metrics or MetricsLogger(base_labels={"table": session.table})
        self._state = SyncState.IDLE
        self._cycle_lock = asyncio.Lock()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._cycle_lock.locked()

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            logger.debug(f"Sync state: {self._state.value} -> {state.value}")
        self._state = state

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._reporter is None:
            return
        try:
            self._reporter(message)
        except Exception as e:
            logger.warning(f"Sync reporter raised while handling '{message}': {e}")

    # --- Public API ---

    async def push(self) -> SyncSummary:
        async with self._cycle_lock:
            try:
                return await self._push()
            finally:
                self._set_state(SyncState.IDLE)

    async def pull(self, query: Optional[PullQuery] = None) -> int:
        """Merges remote records matching `query`. Returns how many local rows changed."""
        async with self._cycle_lock:
            try:
                return await self._pull(query)
            finally:
                self._set_state(SyncState.IDLE)

    async def refresh(self, query: Optional[PullQuery] = None) -> SyncSummary:
        """Push, then pull, as one unit. A failed push skips the pull."""
        async with self._cycle_lock:
            try:
                summary = await self._push()
                summary.pulled = await self._pull(query)
                return summary
            finally:
                self._set_state(SyncState.IDLE)

    # --- Push ---

    async def _push(self) -> SyncSummary:
        await self.session.initialize()
        store = self.session.store
        self._set_state(SyncState.PUSHING)
        start_time = time.perf_counter()
        status = "success"
        try:
            pending = store.enumerate_pending()
            summary = SyncSummary()
            self._metrics.log_gauge("sync_pending_operations", len(pending))
            if not pending:
                logger.info(f"No pending operations to push for table '{self.session.table}'.")
                return summary

            logger.info(f"Pushing {len(pending)} pending operation(s) for table '{self.session.table}'.")
            report = await self.session.transport.push(pending)

            for accepted in report.pushed:
                store.accept_pushed(accepted.operation, accepted.server_record)
            summary.pushed = len(report.pushed)

            if report.failures:
                self._set_state(SyncState.RESOLVING_CONFLICTS)
                summary.conflicts = len(report.failures)
                self._metrics.log_counter("sync_conflicts_total", summary.conflicts)
                for failure in report.failures:
                    resolution = await self._resolve(failure)
                    self._apply(failure, resolution, summary)
                self._report(MSG_PUSH_COMPLETED_WITH_CONFLICTS.format(count=summary.conflicts))

            logger.info(f"Push finished: {summary.pushed} accepted, {summary.conflicts} conflict(s), "
                        f"{summary.resolved} resolved, {summary.deferred} deferred, {summary.failed} failed.")
            return summary
        except Exception as e:
            status = "failure"
            self._report(MSG_PUSH_FAILED.format(error=e))
            raise
        finally:
            self._metrics.log_histogram("sync_push_duration_seconds", time.perf_counter() - start_time,
                                        labels={"status": status})

    async def _resolve(self, failure: PushFailure) -> Resolution:
        outcome = classify(failure)
        if isinstance(outcome, NeedsDecision):
            answer = await self.session.gateway.request_decision(outcome.request)
            outcome = resume_with_answer(outcome, answer)
        return outcome

    def _apply(self, failure: PushFailure, resolution: Resolution, summary: SyncSummary) -> None:
        """Applies one resolution to the queue atomically."""
        record_id = failure.record_id
        if isinstance(resolution, Fail) and resolution.fatal:
            raise UnhandledConflictError(
                f"Cannot resolve {failure.kind!r} failure for record '{record_id}': {resolution.reason}",
                failure=failure,
            )

        summary.resolutions.append(ResolvedConflict(
            record_id=record_id, operation=failure.kind, status=failure.status, resolution=resolution,
        ))
        self._metrics.log_counter("sync_resolutions_total", labels={"resolution": resolution.kind})

        if isinstance(resolution, Fail):
            logger.error(f"Unresolved {failure.kind.value} conflict for record '{record_id}' "
                         f"(status={failure.status.value}): {resolution.reason}. Operation stays queued.")
            summary.failed += 1
            return

        if isinstance(resolution, Discard) and resolution.keep_pending:
            logger.info(f"Conflict for record '{record_id}' skipped; operation stays queued for the next push.")
            summary.deferred += 1
            return

        store = self.session.store
        with store.transaction():
            if isinstance(resolution, Discard):
                store.remove(record_id)
                self._settle_discarded(failure)
            elif isinstance(resolution, DiscardAndAdopt):
                store.remove(record_id)
                store.upsert_remote_record(resolution.remote_record)
            elif isinstance(resolution, Reapply):
                store.replace(record_id, PendingOperation(kind=OperationKind.UPDATE, record=resolution.record))
                store.upsert_remote_record(resolution.record)
            elif isinstance(resolution, ChangeKind):
                store.replace(record_id, PendingOperation(kind=resolution.new_kind, record=resolution.record))
                store.upsert_remote_record(resolution.record)
        logger.debug(f"Applied '{resolution.kind}' to pending operation for record '{record_id}'.")
        summary.resolved += 1

    def _settle_discarded(self, failure: PushFailure) -> None:
        """
        Brings the local row in line with the server once its pending operation is dropped.

        A discarded delete, or an update whose record is gone remotely, leaves no local
        row. Otherwise the server's copy replaces the local one when the failure carried it.
        """
        store = self.session.store
        remote = failure.remote_record
        if failure.kind == OperationKind.DELETE or (
                failure.kind == OperationKind.UPDATE and failure.status == PushStatus.NOT_FOUND):
            store.purge_record(failure.record_id)
        elif remote is not None:
            if remote.deleted:
                store.purge_record(failure.record_id)
            else:
                store.upsert_remote_record(remote)

    # --- Pull ---

    async def _pull(self, query: Optional[PullQuery]) -> int:
        await self.session.initialize()
        self._set_state(SyncState.PULLING)
        start_time = time.perf_counter()
        status = "success"
        try:
            records = await self.session.transport.pull(query or PullQuery())
            merged = self.session.store.merge_pulled(records)
            logger.info(f"Pull finished: {len(records)} record(s) received, {merged} merged.")
            return merged
        except Exception as e:
            status = "failure"
            self._report(MSG_PULL_FAILED.format(error=e))
            raise
        finally:
            self._metrics.log_histogram("sync_pull_duration_seconds", time.perf_counter() - start_time,
                                        labels={"status": status})

#
# End of offline_sync/Sync/Sync_Orchestrator.py
########################################################################################################################
