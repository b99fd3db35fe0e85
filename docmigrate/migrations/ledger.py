"""
Run state owned by a single migration: failed-document ledger and counters
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Set, Tuple


class FailureLedger:
    """
    Append-only record of documents that exhausted their insert retries

    Documents are tracked by object identity, so a document can be
    recorded at most once. Once sealed (handed to a sink) the ledger
    rejects further appends.

    All writers run on one event loop, so appends never interleave.
    """

    def __init__(self):
        self._documents: List[Dict[str, Any]] = []
        self._identities: Set[int] = set()
        self._sealed = False

    def append(self, document: Dict[str, Any]):
        if self._sealed:
            raise RuntimeError("Failure ledger is sealed; no further documents can be recorded")
        identity = id(document)
        if identity in self._identities:
            raise ValueError("Document is already recorded in the failure ledger")
        self._identities.add(identity)
        self._documents.append(document)

    def seal(self):
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def documents(self) -> Tuple[Dict[str, Any], ...]:
        return tuple(self._documents)

    def __contains__(self, document) -> bool:
        return id(document) in self._identities

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(tuple(self._documents))

    def __bool__(self) -> bool:
        return bool(self._documents)

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return f"FailureLedger({len(self._documents)} documents, {state})"


@dataclass
class RunCounters:
    """Progress counters for one run - reporting only, never used for control"""
    documents_dispatched: int = 0
    batches_dispatched: int = 0
    documents_confirmed: int = 0
    throttled_writes: int = 0
    throttled_fetches: int = 0

    def record_batch(self, size: int) -> int:
        """Add a joined batch to the running total and return the new total"""
        self.documents_dispatched += size
        self.batches_dispatched += 1
        return self.documents_dispatched

    def to_dict(self) -> Dict[str, int]:
        return {
            "documents_dispatched": self.documents_dispatched,
            "batches_dispatched": self.batches_dispatched,
            "documents_confirmed": self.documents_confirmed,
            "throttled_writes": self.throttled_writes,
            "throttled_fetches": self.throttled_fetches
        }
