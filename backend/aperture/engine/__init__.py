"""Aperture Reconciliation Engine - merge, build, lay out and highlight."""

from aperture.engine.environment import normalize_env
from aperture.engine.merger import merge_records
from aperture.engine.graph_builder import DedupIndex, build_graph, component_type_label
from aperture.engine.layout import layout_graph
from aperture.engine.highlight import connected_path
from aperture.engine.orchestrator import BrowseSnapshot, FetchOrchestrator
from aperture.engine.session import (
    ExpansionResult,
    GraphFilters,
    ReconciliationSession,
    SessionStats,
)

__all__ = [
    "normalize_env",
    "merge_records",
    "DedupIndex",
    "build_graph",
    "component_type_label",
    "layout_graph",
    "connected_path",
    "BrowseSnapshot",
    "FetchOrchestrator",
    "ExpansionResult",
    "GraphFilters",
    "ReconciliationSession",
    "SessionStats",
]
