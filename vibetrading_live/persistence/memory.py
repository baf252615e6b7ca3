"""In-memory strategy repository for standalone mode."""

import asyncio
import itertools
from typing import Dict, List

from vibetrading_live.models import RunningStrategyState, TradeRecord


class InMemoryStrategyRepository:
    """Keeps snapshots of saved states and orders in process memory."""

    def __init__(self) -> None:
        self.states: Dict[int, RunningStrategyState] = {}
        self.orders: List[TradeRecord] = []
        self._state_ids = itertools.count(1)
        self._order_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def save_state(self, state: RunningStrategyState) -> int:
        async with self._lock:
            state_id = state.id if state.id is not None else next(self._state_ids)
            self.states[state_id] = state.model_copy(update={"id": state_id})
            return state_id

    async def save_order(self, record: TradeRecord) -> int:
        async with self._lock:
            order_id = next(self._order_ids)
            self.orders.append(record.model_copy(update={"id": order_id}))
            return order_id

    async def load_auto_start_candidates(self) -> List[RunningStrategyState]:
        async with self._lock:
            return [
                state.model_copy() for _, state in sorted(self.states.items())
                if state.is_active
            ]
