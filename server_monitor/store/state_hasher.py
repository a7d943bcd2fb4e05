"""
Server Monitor: State Hasher

Computes deterministic hashes of stored state.
Used to prove that a rejected batch left the store untouched.
"""
import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict

class StateEncoder(json.JSONEncoder):
    """JSON encoder that handles datetimes and enums."""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)

class StateHasher:
    """
    Computes deterministic SHA-256 hashes of store documents.
    """

    @staticmethod
    def hash_state(state: Dict[str, Any]) -> str:
        """
        Computes a deterministic hash of the given state dictionary.
        Keys are sorted for determinism.
        """
        serialized = json.dumps(state, sort_keys=True, cls=StateEncoder)
        return hashlib.sha256(serialized.encode('utf-8')).hexdigest()
