from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence
from ..core.clock import Clock
from ..core.logger import get_logger
from ..core.types import FIELD_CLOSED_AT, FIELD_CREATED, Mutation, TrackedServer

logger = get_logger("EntityStore")

TIMESTAMP_FIELDS = (FIELD_CREATED, FIELD_CLOSED_AT)

class EntityStore(ABC):
    """
    Abstract Base Class for tracked-server persistence.
    Must support a full scan and an all-or-nothing batch apply.
    """

    @abstractmethod
    async def scan_all(self) -> Dict[str, TrackedServer]:
        """
        Returns every tracked record keyed by jobId.
        Raises StoreScanFailure if the state cannot be read.
        """
        pass

    @abstractmethod
    async def apply_batch(self, mutations: Sequence[Mutation]):
        """
        Applies all mutations in one commit, or none of them.
        Raises BatchCommitFailure on rejection.
        """
        pass

    async def close(self):
        """
        Releases connections. Optional.
        """
        pass

def decode_timestamps(job_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Returns a copy of `doc` with every stored timestamp as an aware UTC datetime.
    Naive values are read as UTC. Unreadable values become None and only that record is degraded.
    """
    decoded = dict(doc)
    for name in TIMESTAMP_FIELDS:
        raw = doc.get(name)
        parsed = Clock.parse_timestamp(raw)
        if parsed is None and (name == FIELD_CREATED or raw is not None):
            logger.warning("record_validation_failure", job_id=job_id, field=name, value=str(raw))
        decoded[name] = parsed
    return decoded
