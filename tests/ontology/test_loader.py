"""Tests for the graph ontology loader."""

from __future__ import annotations

import pytest

from ekg.core.models import EdgeKind, NodeKind
from ekg.ontology.loader import (
    GraphSchemaError,
    get_ontology,
    get_valid_endpoints,
    get_valid_node_labels,
    get_valid_relationship_types,
    validate_endpoints,
    validate_schema,
)


class TestOntology:
    def test_ontology_is_cached(self):
        assert get_ontology() is get_ontology()

    def test_schema_is_consistent(self):
        assert validate_schema() == []

    def test_labels_match_model_enums(self):
        assert get_valid_node_labels() == {kind.value for kind in NodeKind}
        assert get_valid_relationship_types() == {kind.value for kind in EdgeKind}

    def test_endpoints(self):
        assert get_valid_endpoints("DF") == (["Event"], ["Event"])
        assert get_valid_endpoints("DF_C") == (["Class"], ["Class"])
        assert get_valid_endpoints("NOPE") is None


class TestValidateEndpoints:
    def test_valid_edge_passes(self):
        validate_endpoints("CORR", "Event", "Entity")

    def test_unknown_type(self):
        with pytest.raises(GraphSchemaError, match="Unknown relationship type"):
            validate_endpoints("FOLLOWS", "Event", "Event")

    def test_wrong_source(self):
        with pytest.raises(GraphSchemaError, match="source"):
            validate_endpoints("DF", "Entity", "Event")

    def test_wrong_target(self):
        with pytest.raises(GraphSchemaError, match="target"):
            validate_endpoints("OBSERVED", "Event", "Entity")
