"""MCTS phases and the scheduler driving them."""

from __future__ import annotations

from researchtree.mcts.backprop import Backpropagator
from researchtree.mcts.expander import ExpansionOutcome, Expander
from researchtree.mcts.scheduler import TreeScheduler
from researchtree.mcts.scorer import Scorer, simulation_reward, ucb1
from researchtree.mcts.selector import Selector

__all__ = [
    "Backpropagator",
    "ExpansionOutcome",
    "Expander",
    "Scorer",
    "Selector",
    "TreeScheduler",
    "simulation_reward",
    "ucb1",
]
