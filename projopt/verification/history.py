"""
Optimization history

Append-only audit trail of top-level optimize() calls, owned by the
optimizer instance that produced it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple


@dataclass(frozen=True)
class HistoryEntry:
    """
    One completed optimize() call

    Attributes:
        original: Normalized input
        optimized: Final descriptor or query
        analysis: Analysis of the input
        context: Context of the call
        run_id: Ledger run holding the individual steps
        timestamp: When the entry was recorded
        index: Position in the history
        applied: Names of the strategies whose steps were accepted
    """

    original: Any
    optimized: Any
    analysis: Any
    context: Any
    run_id: int
    timestamp: float
    index: int
    applied: Tuple[str, ...] = ()


class OptimizationHistory:
    """Thread-safe, append-only list of HistoryEntry records"""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[HistoryEntry] = []

    def add(
        self,
        original: Any,
        optimized: Any,
        analysis: Any,
        context: Any,
        run_id: int,
        applied: Tuple[str, ...] = (),
    ) -> HistoryEntry:
        """
        Append an entry

        Returns:
            The recorded entry, with its index and timestamp filled in
        """
        with self._lock:
            entry = HistoryEntry(
                original=original,
                optimized=optimized,
                analysis=analysis,
                context=context,
                run_id=run_id,
                timestamp=time.time(),
                index=len(self._entries),
                applied=tuple(applied),
            )
            self._entries.append(entry)
        return entry

    def get(self, index: int) -> Optional[HistoryEntry]:
        with self._lock:
            if 0 <= index < len(self._entries):
                return self._entries[index]
            return None

    def get_all(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
