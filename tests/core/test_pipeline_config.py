"""Tests for pipeline configuration parsing and validation."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from ekg.core.models import Event
from ekg.core.pipeline_config import (
    ClassifierSpec,
    Condition,
    ConfigurationError,
    EntityTypeSpec,
    PipelineConfig,
    ReificationSpec,
    load_bundled_config,
    load_pipeline_config,
    parse_pipeline_config,
)


def _event(activity: str = "O_Create", **attrs) -> Event:
    return Event(
        event_id="E1",
        timestamp=datetime(2026, 1, 5, 9, 0, tzinfo=UTC),
        activity=activity,
        index=0,
        attributes=attrs,
    )


class TestCondition:
    def test_scalar_values_are_wrapped(self):
        cond = Condition(attribute="priority", values=3)
        assert cond.values == ("3",)

    def test_matches_stringified_value(self):
        cond = Condition(attribute="priority", values=[1, 2])
        assert cond.matches(_event(priority=2))
        assert not cond.matches(_event(priority=5))

    def test_missing_attribute_never_matches(self):
        cond = Condition(attribute="lifecycle", values=["SUSPEND"])
        assert not cond.matches(_event())


class TestEntityTypeSpec:
    def test_attribute_extraction(self):
        spec = EntityTypeSpec(name="Offer", attribute="OfferID")
        assert spec.extract(_event(OfferID="O1")) == "O1"
        assert spec.extract(_event(OfferID="")) is None
        assert spec.extract(_event()) is None

    def test_where_conditions_gate_extraction(self):
        spec = EntityTypeSpec(
            name="Workflow",
            attribute="case",
            where=[Condition(attribute="EventOrigin", values=["Workflow"])],
        )
        assert spec.extract(_event(case="A1", EventOrigin="Workflow")) == "A1"
        assert spec.extract(_event(case="A1", EventOrigin="Application")) is None

    def test_callable_extractor(self):
        spec = EntityTypeSpec(name="Case", extractor=lambda e: e.get("case_no"))
        assert spec.extract(_event(case_no=17)) == "17"

    def test_requires_key_source(self):
        with pytest.raises(ValidationError):
            EntityTypeSpec(name="Nothing")


class TestClassifierSpec:
    def test_single_attribute_key(self):
        spec = ClassifierSpec(name="Activity", attributes=("activity",))
        assert spec.class_key(_event("O_Sent")) == "O_Sent"

    def test_composite_key_requires_every_part(self):
        spec = ClassifierSpec(name="Activity+Lifecycle", attributes=("activity", "lifecycle"))
        assert spec.class_key(_event("O_Sent", lifecycle="complete")) == "O_Sent+complete"
        assert spec.class_key(_event("O_Sent")) is None

    def test_key_function(self):
        spec = ClassifierSpec(name="Hour", key_fn=lambda e: e.timestamp.hour)
        assert spec.class_key(_event()) == "9"

    def test_perspective_scoping(self):
        unscoped = ClassifierSpec(name="Activity", attributes=("activity",))
        scoped = ClassifierSpec(name="Resource", attributes=("resource",), exclude_perspectives=("Resource",))
        only = ClassifierSpec(name="Offer", attributes=("activity",), perspectives=("Offer",))
        assert unscoped.applies_to("Resource")
        assert not scoped.applies_to("Resource")
        assert scoped.applies_to("Application")
        assert only.applies_to("Offer")
        assert not only.applies_to("Application")


class TestPipelineConfig:
    def test_perspectives_lists_base_then_reified(self, pipeline_config):
        assert pipeline_config.perspectives == ["Application", "Offer", "Resource", "AO"]
        assert pipeline_config.reification("AO").constituents == ("Application", "Offer")
        assert pipeline_config.reification("XX") is None

    def test_duplicate_entity_types_rejected(self):
        with pytest.raises(ValidationError, match="unique"):
            PipelineConfig(
                entity_types=[
                    EntityTypeSpec(name="Application", attribute="case"),
                    EntityTypeSpec(name="Application", attribute="app"),
                ]
            )

    def test_reification_of_unknown_type_rejected(self):
        with pytest.raises(ValidationError, match="unknown base types"):
            PipelineConfig(
                entity_types=[EntityTypeSpec(name="Application", attribute="case")],
                reifications=[ReificationSpec(name="AO", constituents=("Application", "Offer"))],
            )

    def test_reification_name_collision_rejected(self):
        with pytest.raises(ValidationError, match="collides"):
            PipelineConfig(
                entity_types=[
                    EntityTypeSpec(name="Application", attribute="case"),
                    EntityTypeSpec(name="Offer", attribute="offer"),
                ],
                reifications=[ReificationSpec(name="Offer", constituents=("Application", "Offer"))],
            )

    def test_reification_needs_two_distinct_constituents(self):
        with pytest.raises(ValidationError):
            ReificationSpec(name="AA", constituents=("Application",))
        with pytest.raises(ValidationError):
            ReificationSpec(name="AA", constituents=("Application", "Application"))

    def test_classifier_scope_must_name_known_perspective(self):
        with pytest.raises(ValidationError, match="unknown perspectives"):
            PipelineConfig(
                entity_types=[EntityTypeSpec(name="Application", attribute="case")],
                classifiers=[ClassifierSpec(name="Activity", attributes=("activity",), perspectives=("Offer",))],
            )

    def test_at_least_one_entity_type(self):
        with pytest.raises(ValidationError):
            PipelineConfig(entity_types=[])


class TestLoading:
    def test_parse_wraps_validation_errors(self):
        with pytest.raises(ConfigurationError):
            parse_pipeline_config({"entity_types": [{"name": "Application"}]})

    def test_load_from_yaml(self, tmp_path: Path):
        path = tmp_path / "pipeline.yaml"
        path.write_text(
            "columns:\n"
            "  event_id: idx\n"
            "filters:\n"
            "  - attribute: lifecycle\n"
            "    values: [SUSPEND]\n"
            "entity_types:\n"
            "  - name: Application\n"
            "    attribute: case\n"
            "classifiers:\n"
            "  - name: Activity\n"
            "    attributes: [activity]\n"
        )
        config = load_pipeline_config(path)
        assert config.columns.event_id == "idx"
        assert config.columns.timestamp == "timestamp"
        assert config.filters[0].values == ("SUSPEND",)
        assert [c.name for c in config.classifiers] == ["Activity"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_pipeline_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("entity_types: [\n")
        with pytest.raises(ConfigurationError, match="Malformed YAML"):
            load_pipeline_config(path)

    def test_non_mapping_document(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_pipeline_config(path)

    def test_bundled_bpic17_config(self):
        config = load_bundled_config("bpic17")
        assert config.perspectives == ["Application", "Workflow", "Offer", "Resource", "AO", "AW"]
        assert config.columns.activity == "Activity"
        resource = next(c for c in config.classifiers if c.name == "Resource")
        assert not resource.applies_to("Resource")
