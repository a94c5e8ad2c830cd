"""Monte-Carlo tree search engine for growing research trees."""

from __future__ import annotations

from researchtree.audit import AuditLog
from researchtree.config import EngineConfig, Settings, load_settings
from researchtree.mcts import Expander, TreeScheduler
from researchtree.models import NodeStatus, ResearchTree, ResearchTreeNode, TreeParams, TreeStatus
from researchtree.store import TreeStore

__all__ = [
    "AuditLog",
    "EngineConfig",
    "Expander",
    "NodeStatus",
    "ResearchTree",
    "ResearchTreeNode",
    "Settings",
    "TreeParams",
    "TreeScheduler",
    "TreeStatus",
    "TreeStore",
    "load_settings",
]
