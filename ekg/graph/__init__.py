"""Construction context, registries and the frozen process graph."""

from ekg.graph.context import GraphContext
from ekg.graph.process_graph import GraphNode, GraphRelationship, GraphStats, ProcessGraph

__all__ = ["GraphContext", "GraphNode", "GraphRelationship", "GraphStats", "ProcessGraph"]
