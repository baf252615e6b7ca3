"""Strategy runtime registry: (strategy, symbol, interval) -> running state."""

import threading
from typing import Dict, List, Optional

from vibetrading_live.models import RunningStrategyState, StrategyKey


class StrategyRuntimeRegistry:
    """
    Thread-safe map of running strategies.

    Lifecycle calls and the tick dispatch path may touch it from
    different threads; every operation holds the lock for its duration.
    """

    def __init__(self) -> None:
        self._states: Dict[StrategyKey, RunningStrategyState] = {}
        self._lock = threading.Lock()

    def insert(self, state: RunningStrategyState) -> bool:
        """Insert a state; returns False if its key is already taken."""
        with self._lock:
            if state.key in self._states:
                return False
            self._states[state.key] = state
            return True

    def remove(
        self,
        key: StrategyKey,
        expected: Optional[RunningStrategyState] = None,
    ) -> Optional[RunningStrategyState]:
        """
        Remove and return the state under `key`.

        With `expected`, the entry is only removed if it is that exact
        object, so a stale caller cannot evict a restarted strategy.
        """
        with self._lock:
            current = self._states.get(key)
            if current is None:
                return None
            if expected is not None and current is not expected:
                return None
            del self._states[key]
            return current

    def get(self, key: StrategyKey) -> Optional[RunningStrategyState]:
        with self._lock:
            return self._states.get(key)

    def matching(self, symbol: str, interval: str) -> List[RunningStrategyState]:
        with self._lock:
            return [
                state for key, state in self._states.items()
                if key.symbol == symbol and key.interval == interval
            ]

    def is_series_in_use(self, symbol: str, interval: str) -> bool:
        with self._lock:
            return any(
                key.symbol == symbol and key.interval == interval for key in self._states
            )

    def values(self) -> List[RunningStrategyState]:
        with self._lock:
            return list(self._states.values())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
