# fx_layers/L5_learning/experience.py
"""
Bounded experience history.

Fixed-capacity FIFO ring buffer of (features, mode, state, reward)
entries. When full, appending evicts the oldest entry.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Tuple

import numpy as np
import pandas as pd

from fx_layers.L0_adaptive_config import DecisionMode, MarketState


@dataclass(frozen=True)
class ExperienceEntry:
    """One resolved (decision, outcome) pair."""
    decision_id: str
    symbol: str
    features_snapshot: np.ndarray = field(compare=False)
    chosen_mode: DecisionMode
    chosen_state: MarketState
    realized_return: float
    realized_reward: float
    max_drawdown: float
    timestamp: datetime


class ExperienceBuffer:
    """Ring buffer with an explicit capacity and an eviction counter."""

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: deque[ExperienceEntry] = deque(maxlen=capacity)
        self.evicted = 0
        self.total_appended = 0

    def append(self, entry: ExperienceEntry) -> None:
        if len(self._entries) == self.capacity:
            self.evicted += 1
        self._entries.append(entry)
        self.total_appended += 1

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ExperienceEntry]:
        return iter(self._entries)

    def latest(self, n: int = 10) -> List[ExperienceEntry]:
        return list(self._entries)[-n:]

    def keys(self) -> List[Tuple[DecisionMode, MarketState]]:
        """Distinct (mode, state) pairs present, in a stable order."""
        pairs = {(e.chosen_mode, e.chosen_state) for e in self._entries}
        return sorted(pairs, key=lambda k: (k[0].value, k[1].value))

    def rewards_for(self, mode: DecisionMode, state: MarketState) -> np.ndarray:
        return np.array(
            [e.realized_reward for e in self._entries
             if e.chosen_mode == mode and e.chosen_state == state],
            dtype=float,
        )

    def to_frame(self) -> pd.DataFrame:
        columns = ["DecisionId", "Symbol", "Mode", "State", "Return", "Reward", "Drawdown", "Timestamp"]
        return pd.DataFrame([
            {
                "DecisionId": e.decision_id,
                "Symbol": e.symbol,
                "Mode": e.chosen_mode.value,
                "State": e.chosen_state.value,
                "Return": e.realized_return,
                "Reward": e.realized_reward,
                "Drawdown": e.max_drawdown,
                "Timestamp": e.timestamp,
            }
            for e in self._entries
        ], columns=columns)
