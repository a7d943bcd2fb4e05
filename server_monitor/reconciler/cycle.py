"""
Server Monitor: Reconciliation Cycle

Runs one cycle end to end: fetch and scan concurrently, reconcile, commit the
batch atomically. Every failure aborts the cycle without side effects and is
reported, never raised; the next tick retries from fresh reads.
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from .engine import ReconciliationPolicy, reconcile
from ..core.clock import Clock
from ..core.errors import BatchCommitFailure, FetchFailure, StoreScanFailure
from ..core.journal import LifecycleJournal
from ..core.logger import bind_cycle, get_logger
from ..core.types import (
    CycleOutcome,
    CycleReport,
    Delete,
    FIELD_MISSED_CYCLES,
    FIELD_STATUS,
    Insert,
    JournalEntry,
    Mutation,
    ServerStatus,
    TrackedServer,
    UpdateFields,
)
from ..sources.snapshot_source import SnapshotSource
from ..store.entity_store import EntityStore

logger = get_logger("ReconciliationCycle")

_FAILURE_OUTCOMES = {
    FetchFailure: CycleOutcome.FETCH_FAILED,
    StoreScanFailure: CycleOutcome.SCAN_FAILED,
    BatchCommitFailure: CycleOutcome.COMMIT_FAILED,
}

class ReconciliationCycle:
    """
    One reconciliation pass over injected collaborators.
    Holds no state between runs apart from the cycle counter.
    """
    def __init__(
        self,
        source: SnapshotSource,
        store: EntityStore,
        policy: ReconciliationPolicy,
        io_timeout: float = 20.0,
        journal: Optional[LifecycleJournal] = None,
        clock=Clock,
    ):
        self.source = source
        self.store = store
        self.policy = policy
        self.io_timeout = io_timeout
        self.journal = journal or LifecycleJournal()
        self.clock = clock
        self.cycles_run = 0

    async def run_once(self) -> CycleReport:
        self.cycles_run += 1
        bind_cycle(self.cycles_run)
        now = self.clock.now()
        report = CycleReport(cycle_id=self.cycles_run, started_at=now)
        logger.info("cycle_started", now=now.isoformat())

        try:
            live, tracked = await self._read()
            report.live_count = len(live)
            report.tracked_count = len(tracked)

            mutations = reconcile(live, tracked, now, self.policy)
            _tally(report, mutations)

            if mutations:
                await self._commit(mutations)
                report.outcome = CycleOutcome.COMMITTED
                self._journal_commit(report, mutations, tracked, now)
            else:
                report.outcome = CycleOutcome.NOOP
        except (FetchFailure, StoreScanFailure, BatchCommitFailure) as e:
            report.outcome = _FAILURE_OUTCOMES[type(e)]
            report.error = str(e)
            logger.error("cycle_aborted", outcome=report.outcome.value, error=str(e))
        finally:
            report.finished_at = self.clock.now()

        logger.info("cycle_complete", **report.model_dump(
            mode="json", include={"outcome", "live_count", "tracked_count", "inserted", "reset",
                                  "missed", "closed", "deleted", "refreshed"}))
        return report

    async def _read(self):
        """
        Snapshot fetch and store scan are independent reads; issue both at once.
        """
        fetched, scanned = await asyncio.gather(
            self._bounded(self.source.fetch(), "snapshot fetch"),
            self._bounded(self.store.scan_all(), "store scan"),
            return_exceptions=True,
        )

        if isinstance(fetched, BaseException) or not fetched.ok:
            reason = fetched if isinstance(fetched, BaseException) else fetched.error
            raise FetchFailure(f"Live snapshot unavailable: {reason}")
        if isinstance(scanned, BaseException):
            raise StoreScanFailure(f"Tracked state unavailable: {scanned}")
        return fetched.servers, scanned

    async def _commit(self, mutations: Sequence[Mutation]):
        try:
            await asyncio.wait_for(self.store.apply_batch(mutations), timeout=self.io_timeout)
        except asyncio.TimeoutError as e:
            raise BatchCommitFailure(f"Batch commit timed out after {self.io_timeout}s") from e
        except BatchCommitFailure:
            raise
        except Exception as e:
            raise BatchCommitFailure(f"Batch commit failed: {e}") from e

    async def _bounded(self, awaitable, what: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.io_timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"{what} timed out after {self.io_timeout}s") from e

    def _journal_commit(self, report: CycleReport, mutations: Sequence[Mutation],
                        tracked: Dict[str, TrackedServer], now: datetime):
        if not self.journal.enabled:
            return
        try:
            self._append_entries(report, mutations, tracked, now)
        except OSError as e:
            # The batch is already committed; only the journal record is lost
            logger.error("journal_write_failed", path=self.journal.filepath, error=str(e))

    def _append_entries(self, report: CycleReport, mutations: Sequence[Mutation],
                        tracked: Dict[str, TrackedServer], now: datetime):
        for mutation in mutations:
            if isinstance(mutation, UpdateFields) and mutation.fields.get(FIELD_STATUS) == ServerStatus.CLOSED:
                self.journal.append(JournalEntry(
                    event_type="SERVER_CLOSED",
                    timestamp=now,
                    data={"jobId": mutation.job_id, **mutation.model_dump(mode="json")["fields"]},
                ))
            elif isinstance(mutation, Delete):
                record = tracked.get(mutation.job_id)
                self.journal.append(JournalEntry(
                    event_type="SERVER_DELETED",
                    timestamp=now,
                    data=record.model_dump(mode="json", by_alias=True) if record else {"jobId": mutation.job_id},
                ))
        self.journal.append(JournalEntry(event_type="CYCLE", timestamp=now, data=report.model_dump(mode="json")))

def _tally(report: CycleReport, mutations: List[Mutation]):
    """
    Counts each mutation once, by the lifecycle effect it carries.
    """
    for mutation in mutations:
        if isinstance(mutation, Insert):
            report.inserted += 1
        elif isinstance(mutation, Delete):
            report.deleted += 1
        elif mutation.fields.get(FIELD_STATUS) == ServerStatus.CLOSED:
            report.closed += 1
        elif mutation.fields.get(FIELD_MISSED_CYCLES) == 0:
            report.reset += 1
        elif FIELD_MISSED_CYCLES in mutation.fields:
            report.missed += 1
        else:
            report.refreshed += 1
