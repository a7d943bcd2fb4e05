from typing import Iterator, Optional
from .types import JournalEntry

class LifecycleJournal:
    """
    Append-only journal of committed cycles and lifecycle transitions.
    Writes newline-delimited JSON. A journal without a path records nothing.
    """
    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath
        self._file = open(self.filepath, "a", buffering=1) if filepath else None # Line buffered

    @property
    def enabled(self) -> bool:
        return self._file is not None

    def append(self, entry: JournalEntry):
        """
        Writes a single entry to the journal.
        """
        if self._file is None:
            return
        self._file.write(entry.model_dump_json() + "\n")

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    @staticmethod
    def replay(filepath: str) -> Iterator[JournalEntry]:
        """
        Generator to replay entries from a journal file.
        """
        with open(filepath, "r") as f:
            for line in f:
                if line.strip():
                    yield JournalEntry.model_validate_json(line)
