"""Node/edge-list export of a ProcessGraph for downstream tooling.

Two layouts are supported: a single JSON document with ``nodes`` and
``relationships`` arrays, and a pair of CSV files (``nodes.csv`` and
``edges.csv``) whose property columns hold JSON-encoded attribute maps.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any

from ekg.core.models import EdgeKind, NodeKind
from ekg.graph.process_graph import GraphNode, GraphRelationship, ProcessGraph

logger = logging.getLogger(__name__)

NODE_COLUMNS = ["id", "label", "properties"]
EDGE_COLUMNS = ["from_id", "to_id", "relationship_type", "properties"]


def _node_dict(node: GraphNode) -> dict[str, Any]:
    return {"id": node.id, "label": node.label, "properties": node.properties}


def _relationship_dict(rel: GraphRelationship) -> dict[str, Any]:
    return {
        "from_id": rel.from_id,
        "to_id": rel.to_id,
        "relationship_type": rel.relationship_type,
        "properties": rel.properties,
    }


def graph_to_dict(graph: ProcessGraph, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a JSON-serializable node/relationship listing of ``graph``."""
    data: dict[str, Any] = {
        "log_id": graph.log_id,
        "nodes": [_node_dict(n) for kind in NodeKind for n in graph.nodes(kind)],
        "relationships": [_relationship_dict(r) for kind in EdgeKind for r in graph.edges(kind)],
    }
    if extra:
        data.update(extra)
    return data


def to_json(graph: ProcessGraph, path: str | Path, extra: dict[str, Any] | None = None) -> Path:
    """Write ``graph`` as a single JSON document and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = graph_to_dict(graph, extra)
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info(
        "Exported %d nodes and %d relationships to %s",
        len(data["nodes"]),
        len(data["relationships"]),
        path,
    )
    return path


def to_csv(graph: ProcessGraph, directory: str | Path) -> tuple[Path, Path]:
    """Write ``nodes.csv`` and ``edges.csv`` into ``directory``."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    nodes_path = directory / "nodes.csv"
    edges_path = directory / "edges.csv"

    node_count = 0
    with nodes_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=NODE_COLUMNS)
        writer.writeheader()
        for kind in NodeKind:
            for node in graph.nodes(kind):
                row = _node_dict(node)
                row["properties"] = json.dumps(row["properties"], default=str, sort_keys=True)
                writer.writerow(row)
                node_count += 1

    edge_count = 0
    with edges_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=EDGE_COLUMNS)
        writer.writeheader()
        for kind in EdgeKind:
            for rel in graph.edges(kind):
                row = _relationship_dict(rel)
                row["properties"] = json.dumps(row["properties"], default=str, sort_keys=True)
                writer.writerow(row)
                edge_count += 1

    logger.info("Exported %d nodes and %d edges to %s", node_count, edge_count, directory)
    return nodes_path, edges_path
