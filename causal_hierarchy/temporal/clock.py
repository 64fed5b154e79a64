"""
Logical Clock for Deterministic Stamping
========================================

Injectable millisecond clock used for every `created_at_ms` the hierarchy
writes.

GUARANTEES:
- Same inputs + same clock sequence = byte-identical outputs
- Never reads system time implicitly outside LIVE mode
- Every tick handed out is recorded, so a LIVE run can be replayed
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple
import time


class ClockExhausted(Exception):
    """Raised when replay clock runs out of ticks."""
    pass


@dataclass
class LogicalClock:
    """
    Injectable clock for deterministic execution.

    MODES:
    ======
    1. LIVE mode: wall-clock milliseconds, every tick logged
    2. REPLAY mode: pre-recorded tick sequence
    3. FROZEN mode: one fixed instant for every read
    """
    _ticks: List[int] = field(default_factory=list)
    _current_index: int = 0
    _mode: str = "live"
    _frozen_ms: Optional[int] = None

    def now_ms(self) -> int:
        """Current logical time in epoch milliseconds."""
        if self._mode == "live":
            current = time.time_ns() // 1_000_000
            self._ticks.append(current)
            self._current_index = len(self._ticks)
            return current
        if self._mode == "frozen":
            self._current_index += 1
            return int(self._frozen_ms or 0)
        if self._current_index >= len(self._ticks):
            raise ClockExhausted(
                f"Replay clock exhausted at index {self._current_index}. "
                f"Original execution had {len(self._ticks)} ticks."
            )
        tick = self._ticks[self._current_index]
        self._current_index += 1
        return tick

    def tick_count(self) -> int:
        """Number of ticks recorded/consumed."""
        return self._current_index

    def is_live(self) -> bool:
        return self._mode == "live"

    def recorded_ticks(self) -> Tuple[int, ...]:
        """Ticks handed out so far in LIVE mode (the replay log)."""
        return tuple(self._ticks)

    @classmethod
    def live(cls) -> 'LogicalClock':
        """Create clock in LIVE mode (uses system time)."""
        return cls(_mode="live")

    @classmethod
    def frozen(cls, epoch_ms: int) -> 'LogicalClock':
        """Create clock that always reads `epoch_ms`."""
        return cls(_mode="frozen", _frozen_ms=int(epoch_ms))

    @classmethod
    def replay(cls, ticks: Iterable[int]) -> 'LogicalClock':
        """Create clock in REPLAY mode from a recorded tick sequence."""
        return cls(_ticks=[int(t) for t in ticks], _current_index=0, _mode="replay")

    def __repr__(self) -> str:
        return f"LogicalClock({self._mode.upper()}, ticks={len(self._ticks)}, index={self._current_index})"
