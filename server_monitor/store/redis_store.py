import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError
from .entity_store import EntityStore, decode_timestamps
from ..core.errors import BatchCommitFailure, StoreScanFailure
from ..core.logger import get_logger
from ..core.types import (
    Delete,
    FIELD_ATTRIBUTES,
    FIELD_JOB_ID,
    Insert,
    Mutation,
    TrackedServer,
    UpdateFields,
)

logger = get_logger("RedisEntityStore")

class RedisEntityStore(EntityStore):
    """
    Tracked servers in Redis.
    One hash per server at `{prefix}:{jobId}`, plus the set `{prefix}:index` of all jobIds.
    Batches are applied inside MULTI/EXEC.
    """
    def __init__(self, redis_url: str = "redis://localhost:6379/0", key_prefix: str = "servers",
                 client: Optional[redis.Redis] = None):
        self.redis = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self.prefix = key_prefix
        self.index_key = f"{key_prefix}:index"

    def record_key(self, job_id: str) -> str:
        return f"{self.prefix}:{job_id}"

    async def scan_all(self) -> Dict[str, TrackedServer]:
        try:
            job_ids = sorted(await self.redis.smembers(self.index_key))
            pipe = self.redis.pipeline(transaction=False)
            for job_id in job_ids:
                pipe.hgetall(self.record_key(job_id))
            rows = await pipe.execute() if job_ids else []
        except RedisError as e:
            raise StoreScanFailure(f"Redis scan failed: {e}") from e

        records: Dict[str, TrackedServer] = {}
        for job_id, row in zip(job_ids, rows):
            if not row:
                # Indexed but hash gone; nothing to reconcile against
                logger.warning("dangling_index_entry", job_id=job_id)
                continue
            record = self._decode(job_id, row)
            if record is not None:
                records[job_id] = record
        return records

    async def apply_batch(self, mutations: Sequence[Mutation]):
        if not mutations:
            return
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for mutation in mutations:
                    self._queue(pipe, mutation)
                await pipe.execute()
        except RedisError as e:
            raise BatchCommitFailure(f"Redis transaction rejected: {e}") from e
        logger.debug("batch_committed", mutations=len(mutations))

    async def close(self):
        await self.redis.aclose()

    def _queue(self, pipe, mutation: Mutation):
        key = self.record_key(mutation.job_id)
        if isinstance(mutation, Insert):
            pipe.delete(key)
            pipe.hset(key, mapping=self._encode(mutation.record.to_document()))
            pipe.sadd(self.index_key, mutation.job_id)
        elif isinstance(mutation, UpdateFields):
            present, absent = self._split(mutation.fields)
            if present:
                pipe.hset(key, mapping=self._encode(present))
            if absent:
                pipe.hdel(key, *absent)
        elif isinstance(mutation, Delete):
            pipe.delete(key)
            pipe.srem(self.index_key, mutation.job_id)
        else:
            raise BatchCommitFailure(f"Unknown mutation {mutation!r}")

    @staticmethod
    def _split(fields: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        present = {k: v for k, v in fields.items() if v is not None}
        absent = [k for k, v in fields.items() if v is None]
        return present, absent

    @staticmethod
    def _encode(fields: Dict[str, Any]) -> Dict[str, str]:
        """
        Redis hash values are flat strings.
        """
        encoded: Dict[str, str] = {}
        for name, value in fields.items():
            if isinstance(value, datetime):
                encoded[name] = value.isoformat()
            elif isinstance(value, Enum):
                encoded[name] = value.value
            elif isinstance(value, (dict, list)):
                encoded[name] = json.dumps(value, sort_keys=True)
            else:
                encoded[name] = str(value)
        return encoded

    @staticmethod
    def _decode(job_id: str, row: Dict[str, str]) -> Optional[TrackedServer]:
        # Unreadable timestamps degrade this record only; closure skips finalUptime, retention keeps it
        doc: Dict[str, Any] = decode_timestamps(job_id, row)
        doc[FIELD_JOB_ID] = job_id

        raw_attributes = doc.get(FIELD_ATTRIBUTES)
        if raw_attributes is not None:
            try:
                doc[FIELD_ATTRIBUTES] = json.loads(raw_attributes)
            except ValueError:
                logger.warning("record_validation_failure", job_id=job_id, field=FIELD_ATTRIBUTES)
                doc[FIELD_ATTRIBUTES] = {}

        try:
            return TrackedServer.model_validate(doc)
        except ValidationError as e:
            logger.warning("invalid_record_skipped", job_id=job_id, error=str(e))
            return None
