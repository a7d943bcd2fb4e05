"""
Server Monitor: Reconciliation Engine

Pure presence-tracking state machine. Given one live snapshot, one scan of the
tracked records and the cycle instant, computes the mutations for the cycle.
No I/O, no hidden state: the same inputs always produce the same mutations.

Per server: nonexistent -> active -> (active)* -> closed -> gone.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from ..core.clock import Clock
from ..core.errors import RecordValidationFailure
from ..core.logger import get_logger
from ..core.types import (
    AttributeRefresh,
    Delete,
    FIELD_ATTRIBUTES,
    FIELD_CLOSED_AT,
    FIELD_FINAL_UPTIME,
    FIELD_MISSED_CYCLES,
    FIELD_STATUS,
    Insert,
    LiveServer,
    Mutation,
    ServerStatus,
    TrackedServer,
    UpdateFields,
)

logger = get_logger("ReconciliationEngine")

DEFAULT_MIRRORED_ATTRIBUTES: Tuple[str, ...] = ("playing", "maxPlayers")

@dataclass(frozen=True)
class ReconciliationPolicy:
    """
    Debounce and retention constants injected into every reconcile call.
    """
    missed_cycles_threshold: int = 10
    deletion_delay: float = 24 * 60 * 60.0 # seconds
    attribute_refresh: AttributeRefresh = AttributeRefresh.ALWAYS
    mirrored_attributes: Tuple[str, ...] = field(default=DEFAULT_MIRRORED_ATTRIBUTES)

    def __post_init__(self):
        if self.missed_cycles_threshold < 1:
            raise ValueError("missed_cycles_threshold must be >= 1")
        if self.deletion_delay <= 0:
            raise ValueError("deletion_delay must be positive")

    @property
    def retention(self) -> timedelta:
        return timedelta(seconds=self.deletion_delay)

def reconcile(
    live_snapshot: Iterable[LiveServer],
    tracked_records: Mapping[str, TrackedServer],
    now: datetime,
    policy: ReconciliationPolicy,
) -> List[Mutation]:
    """
    Computes the ordered mutation batch for one cycle.

    Order: inserts in snapshot order, then one mutation at most per tracked
    record in sorted jobId order. The caller applies the batch atomically.
    """
    live = _index_snapshot(live_snapshot)
    mutations: List[Mutation] = []

    # 1. New servers
    for job_id, server in live.items():
        if job_id not in tracked_records:
            created = _resolve_created(server, now)
            logger.info("server_discovered", job_id=job_id, created=created.isoformat())
            mutations.append(Insert(
                job_id=job_id,
                record=TrackedServer(
                    job_id=job_id,
                    status=ServerStatus.ACTIVE,
                    created=created,
                    missed_cycles=0,
                    attributes=_mirror(server, policy),
                ),
            ))

    for job_id in sorted(tracked_records):
        record = tracked_records[job_id]
        server = live.get(job_id)

        # 4. Retention sweep, independent of live presence
        if record.status == ServerStatus.CLOSED and _retention_elapsed(record, now, policy):
            logger.info("server_record_deleted", job_id=job_id, closed_at=record.closed_at.isoformat())
            mutations.append(Delete(job_id=job_id))
            continue

        if server is not None:
            # 2. Reappearing / continuing servers
            fields = _live_update(record, server, policy)
            if fields:
                mutations.append(UpdateFields(job_id=job_id, fields=fields))
        elif record.status == ServerStatus.ACTIVE:
            # 3. Missing active servers
            mutations.append(_missed(record, now, policy))

    return mutations

def _index_snapshot(live_snapshot: Iterable[LiveServer]) -> Dict[str, LiveServer]:
    live: Dict[str, LiveServer] = {}
    for server in live_snapshot:
        if server.id in live:
            logger.warning("duplicate_live_server", job_id=server.id)
            continue
        live[server.id] = server
    return live

def _resolve_created(server: LiveServer, now: datetime) -> datetime:
    """
    Reported creation instant if usable, else `now`. Never fails the cycle.
    """
    try:
        return _parse_reported_created(server, now)
    except RecordValidationFailure as e:
        logger.warning("record_validation_failure", job_id=e.job_id, field=e.field, reason=str(e), fallback="now")
        return now

def _parse_reported_created(server: LiveServer, now: datetime) -> datetime:
    if server.created is None:
        return now
    parsed = Clock.parse_timestamp(server.created)
    if parsed is None:
        raise RecordValidationFailure(
            f"Unparseable creation timestamp {server.created!r}", job_id=server.id, field="created"
        )
    if parsed > now:
        raise RecordValidationFailure(
            f"Creation timestamp {parsed.isoformat()} is in the future", job_id=server.id, field="created"
        )
    return parsed

def _mirror(server: LiveServer, policy: ReconciliationPolicy) -> Dict[str, Any]:
    if policy.attribute_refresh == AttributeRefresh.NEVER:
        return {}
    return {name: server.attributes[name] for name in policy.mirrored_attributes if name in server.attributes}

def _live_update(record: TrackedServer, server: LiveServer, policy: ReconciliationPolicy) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    reappeared = record.missed_cycles > 0
    if reappeared:
        # Status is left alone: a closed server seen again stays closed
        logger.info("server_reappeared", job_id=record.job_id, missed_cycles=record.missed_cycles,
                    status=record.status.value)
        fields[FIELD_MISSED_CYCLES] = 0

    refresh = policy.attribute_refresh == AttributeRefresh.ALWAYS or (
        policy.attribute_refresh == AttributeRefresh.ON_REAPPEARANCE and reappeared
    )
    if refresh:
        mirrored = _mirror(server, policy)
        if mirrored != record.attributes:
            fields[FIELD_ATTRIBUTES] = mirrored
    return fields

def _missed(record: TrackedServer, now: datetime, policy: ReconciliationPolicy) -> UpdateFields:
    missed = record.missed_cycles + 1
    if missed < policy.missed_cycles_threshold:
        logger.info("server_missed", job_id=record.job_id, missed_cycles=missed)
        return UpdateFields(job_id=record.job_id, fields={FIELD_MISSED_CYCLES: missed})

    final_uptime: Optional[float] = None
    if record.created is None:
        logger.warning("record_validation_failure", job_id=record.job_id, field="created",
                       reason="stored creation timestamp unreadable", fallback="no_final_uptime")
    else:
        final_uptime = Clock.elapsed_seconds(record.created, now)

    logger.info("server_closed", job_id=record.job_id, missed_cycles=missed, final_uptime=final_uptime)
    return UpdateFields(job_id=record.job_id, fields={
        FIELD_STATUS: ServerStatus.CLOSED,
        FIELD_CLOSED_AT: now,
        FIELD_FINAL_UPTIME: final_uptime,
        FIELD_MISSED_CYCLES: missed,
    })

def _retention_elapsed(record: TrackedServer, now: datetime, policy: ReconciliationPolicy) -> bool:
    if record.closed_at is None:
        logger.warning("record_validation_failure", job_id=record.job_id, field="closedAt",
                       reason="closed record without closedAt", fallback="retain")
        return False
    return now - record.closed_at > policy.retention
