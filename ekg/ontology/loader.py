"""Ontology loader for the event knowledge graph.

Loads the YAML ontology schema and provides typed accessors for node and
relationship kinds. The schema is loaded once and cached.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Any

import yaml

_ONTOLOGY_PATH = Path(__file__).parent / "ekg_ontology.yaml"


class GraphSchemaError(ValueError):
    """Raised when a node or edge falls outside the ontology."""


@functools.cache
def _load_ontology() -> dict[str, Any]:
    """Load and cache the YAML ontology schema."""
    with open(_ONTOLOGY_PATH) as f:
        return yaml.safe_load(f)


def get_ontology() -> dict[str, Any]:
    """Return the full ontology dict (cached after first load)."""
    return _load_ontology()


def get_valid_node_labels() -> frozenset[str]:
    """Return the set of valid node labels."""
    return frozenset(_load_ontology()["node_types"].keys())


def get_valid_relationship_types() -> frozenset[str]:
    """Return the set of valid relationship types."""
    return frozenset(_load_ontology()["relationship_types"].keys())


def get_relationship_definition(rel_type: str) -> dict[str, Any] | None:
    """Return the full definition for a relationship type, or None."""
    return _load_ontology()["relationship_types"].get(rel_type)


def get_valid_endpoints(rel_type: str) -> tuple[list[str], list[str]] | None:
    """Return (valid_from, valid_to) for a relationship type.

    Returns:
        Tuple of (from_labels, to_labels) or None if type is unknown.
    """
    defn = get_relationship_definition(rel_type)
    if defn is None:
        return None
    return defn.get("valid_from", []), defn.get("valid_to", [])


def validate_endpoints(rel_type: str, source_label: str, target_label: str) -> None:
    """Check that an edge of ``rel_type`` may connect the two node labels.

    Raises:
        GraphSchemaError: If the type is unknown or an endpoint label is not allowed.
    """
    endpoints = get_valid_endpoints(rel_type)
    if endpoints is None:
        raise GraphSchemaError(f"Unknown relationship type: {rel_type}")
    valid_from, valid_to = endpoints
    if source_label not in valid_from:
        raise GraphSchemaError(f"{rel_type} source must be one of {valid_from}, got {source_label}")
    if target_label not in valid_to:
        raise GraphSchemaError(f"{rel_type} target must be one of {valid_to}, got {target_label}")


def validate_schema() -> list[str]:
    """Validate the ontology YAML for internal consistency.

    Returns:
        List of error messages (empty = valid).
    """
    errors: list[str] = []
    ontology = get_ontology()

    for key in ("version", "node_types", "relationship_types"):
        if key not in ontology:
            errors.append(f"Missing required top-level key: {key}")
    if errors:
        return errors

    node_labels = set(ontology["node_types"].keys())
    for label, defn in ontology["node_types"].items():
        if "description" not in defn:
            errors.append(f"Node type '{label}' missing 'description'")
        if not defn.get("key"):
            errors.append(f"Node type '{label}' missing 'key'")

    for rel_type, defn in ontology["relationship_types"].items():
        if "description" not in defn:
            errors.append(f"Relationship type '{rel_type}' missing 'description'")
        for side in ("valid_from", "valid_to"):
            for label in defn.get(side, []):
                if label not in node_labels:
                    errors.append(f"Relationship '{rel_type}' {side} references unknown node type '{label}'")

    return errors
