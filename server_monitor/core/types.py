from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Storage field names (camelCase, as persisted)
FIELD_JOB_ID = "jobId"
FIELD_STATUS = "status"
FIELD_CREATED = "created"
FIELD_MISSED_CYCLES = "missedCycles"
FIELD_CLOSED_AT = "closedAt"
FIELD_FINAL_UPTIME = "finalUptime"
FIELD_ATTRIBUTES = "attributes"

class ServerStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"

class AttributeRefresh(str, Enum):
    """
    When volatile attributes (player counts etc.) are mirrored onto tracked records.
    Never affects lifecycle fields.
    """
    NEVER = "never"
    ON_REAPPEARANCE = "on_reappearance"
    ALWAYS = "always"

class TrackedServer(BaseModel):
    """
    Persisted lifecycle record for one game server, keyed by its jobId.
    """
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias=FIELD_JOB_ID)
    status: ServerStatus
    created: Optional[datetime] = None # None only when the stored value was unreadable
    missed_cycles: int = Field(default=0, ge=0, alias=FIELD_MISSED_CYCLES)
    closed_at: Optional[datetime] = Field(default=None, alias=FIELD_CLOSED_AT)
    final_uptime: Optional[float] = Field(default=None, alias=FIELD_FINAL_UPTIME) # seconds
    attributes: Dict[str, Any] = Field(default_factory=dict, alias=FIELD_ATTRIBUTES)

    @field_validator("created", "closed_at")
    @classmethod
    def naive_is_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> Dict[str, Any]:
        """Storage representation (camelCase keys, unset optionals dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)

class LiveServer(BaseModel):
    """
    One entry of the live snapshot. Exists only for the duration of a cycle.
    `created` is the raw reported value and is not trusted.
    """
    id: str
    created: Optional[Any] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

class FetchResult(BaseModel):
    """
    Outcome of one snapshot fetch. Sources report failure here instead of raising.
    """
    ok: bool
    servers: List[LiveServer] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, servers: List[LiveServer]) -> "FetchResult":
        return cls(ok=True, servers=servers)

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        return cls(ok=False, error=error)

# --- Mutations ---

class Insert(BaseModel):
    op: Literal["insert"] = "insert"
    job_id: str
    record: TrackedServer

class UpdateFields(BaseModel):
    """
    Partial update. `fields` is keyed by storage field name.
    """
    op: Literal["update"] = "update"
    job_id: str
    fields: Dict[str, Any]

class Delete(BaseModel):
    op: Literal["delete"] = "delete"
    job_id: str

Mutation = Union[Insert, UpdateFields, Delete]

# --- Cycle bookkeeping ---

class CycleOutcome(str, Enum):
    COMMITTED = "COMMITTED"
    NOOP = "NOOP"
    FETCH_FAILED = "FETCH_FAILED"
    SCAN_FAILED = "SCAN_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"

class CycleReport(BaseModel):
    """
    Summary of one reconciliation cycle.
    """
    cycle_id: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcome: CycleOutcome = CycleOutcome.NOOP
    live_count: int = 0
    tracked_count: int = 0
    inserted: int = 0
    reset: int = 0
    missed: int = 0
    closed: int = 0
    deleted: int = 0
    refreshed: int = 0
    error: Optional[str] = None

class JournalEntry(BaseModel):
    """
    Entry for the append-only journal.
    """
    event_type: Literal["CYCLE", "SERVER_CLOSED", "SERVER_DELETED"]
    timestamp: datetime
    data: Dict[str, Any]
