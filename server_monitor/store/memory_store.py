"""
Server Monitor: In-Memory Entity Store

Dict-backed store with copy-on-write commits (no Redis dependency).
Mirrors RedisEntityStore semantics for tests and dry runs.
"""
import copy
from typing import Any, Dict, Optional, Sequence
from pydantic import ValidationError
from .entity_store import EntityStore, decode_timestamps
from .state_hasher import StateHasher
from ..core.errors import BatchCommitFailure
from ..core.logger import get_logger
from ..core.types import Delete, FIELD_JOB_ID, Insert, Mutation, TrackedServer, UpdateFields

logger = get_logger("InMemoryEntityStore")

class InMemoryEntityStore(EntityStore):
    """
    Documents keyed by jobId, stored in their camelCase storage form.
    """
    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.documents: Dict[str, Dict[str, Any]] = copy.deepcopy(documents) if documents else {}
        self.commit_count = 0

    async def scan_all(self) -> Dict[str, TrackedServer]:
        records: Dict[str, TrackedServer] = {}
        for job_id, doc in self.documents.items():
            try:
                records[job_id] = TrackedServer.model_validate({**decode_timestamps(job_id, doc), FIELD_JOB_ID: job_id})
            except ValidationError as e:
                logger.warning("invalid_record_skipped", job_id=job_id, error=str(e))
        return records

    async def apply_batch(self, mutations: Sequence[Mutation]):
        """
        Applies to a copy and swaps it in only if every mutation succeeded.
        """
        staged = copy.deepcopy(self.documents)
        for mutation in mutations:
            if isinstance(mutation, Insert):
                staged[mutation.job_id] = mutation.record.to_document()
            elif isinstance(mutation, UpdateFields):
                doc = staged.get(mutation.job_id)
                if doc is None:
                    raise BatchCommitFailure(f"Update of missing record {mutation.job_id}")
                for name, value in mutation.fields.items():
                    if value is None:
                        doc.pop(name, None)
                    else:
                        doc[name] = copy.deepcopy(value)
            elif isinstance(mutation, Delete):
                staged.pop(mutation.job_id, None)
            else:
                raise BatchCommitFailure(f"Unknown mutation {mutation!r}")

        self.documents = staged
        self.commit_count += 1

    def get_state_hash(self) -> str:
        """Compute hash of current full state."""
        return StateHasher.hash_state(self.documents)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return a copy of current state."""
        return copy.deepcopy(self.documents)
