"""Pydantic models used across the project."""

from __future__ import annotations

from researchtree.models.audit import MCTSIteration, ResearchExpansion
from researchtree.models.generation import GenerationResult, PromptSpec
from researchtree.models.literature import LiteratureCandidate, LiteratureRecord
from researchtree.models.node import NodeDraft, NodeStatus, ResearchTreeNode
from researchtree.models.statistics import TopicCluster, TreePath, TreeStatistics
from researchtree.models.tree import ResearchTree, TreeParams, TreeStatus

__all__ = [
    "GenerationResult",
    "LiteratureCandidate",
    "LiteratureRecord",
    "MCTSIteration",
    "NodeDraft",
    "NodeStatus",
    "PromptSpec",
    "ResearchExpansion",
    "ResearchTree",
    "ResearchTreeNode",
    "TopicCluster",
    "TreeParams",
    "TreePath",
    "TreeStatistics",
    "TreeStatus",
]
