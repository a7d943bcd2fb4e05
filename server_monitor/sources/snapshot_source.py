from abc import ABC, abstractmethod
from ..core.types import FetchResult

class SnapshotSource(ABC):
    """
    Abstract Base Class for live snapshot providers.
    Must report transport failures through FetchResult, never by raising.
    """

    @abstractmethod
    async def fetch(self) -> FetchResult:
        """
        Returns the full current set of live servers, or a failure.
        """
        pass

    async def close(self):
        """
        Graceful shutdown.
        """
        pass
