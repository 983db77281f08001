"""Configuration surface of a graph construction run.

Declares which columns hold the event identity, which rows are filtered out,
the base entity types and their extractors, the reified (compound) entity
types, and the classification dimensions. Everything is validated when the
configuration is built, so later stages never discover an unknown entity type
or dimension mid-run.

Configurations are usually loaded from YAML::

    entity_types:
      - name: Application
        attribute: case
      - name: Offer
        attribute: OfferID
        where:
          - attribute: EventOrigin
            values: [Offer]
    reifications:
      - name: AO
        constituents: [Application, Offer]
    classifiers:
      - name: Activity
        attributes: [Activity]

but extractors and class-key functions may also be supplied as plain callables.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ekg.core.models import Event

logger = logging.getLogger(__name__)

CONFIGS_DIR = Path(__file__).parent / "configs"

KeyFunction = Callable[[Event], Any]


class ConfigurationError(ValueError):
    """Raised when a pipeline configuration is invalid or cannot be loaded."""


def _as_key(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class Condition(BaseModel):
    """Matches events whose attribute value is one of ``values``."""

    model_config = ConfigDict(frozen=True)

    attribute: str
    values: tuple[str, ...] = Field(min_length=1)

    @field_validator("values", mode="before")
    @classmethod
    def stringify_values(cls, v: Any) -> Any:
        if isinstance(v, (str, int, float)):
            v = [v]
        if isinstance(v, (list, tuple)):
            return tuple(str(item) for item in v)
        return v

    def matches(self, event: Event) -> bool:
        value = event.get(self.attribute)
        return value is not None and str(value) in self.values


class ColumnMapping(BaseModel):
    """Raw record columns holding the event identity."""

    model_config = ConfigDict(frozen=True)

    event_id: str = "id"
    timestamp: str = "timestamp"
    activity: str = "activity"


class EntityTypeSpec(BaseModel):
    """A base entity type and how to extract its key from an event."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    attribute: str | None = None
    where: tuple[Condition, ...] = ()
    extractor: KeyFunction | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def require_key_source(self) -> EntityTypeSpec:
        if self.attribute is None and self.extractor is None:
            raise ValueError(f"Entity type {self.name!r} needs an 'attribute' or an extractor")
        return self

    def extract(self, event: Event) -> str | None:
        """Return the entity key for ``event``, or None if it does not apply."""
        if not all(cond.matches(event) for cond in self.where):
            return None
        if self.extractor is not None:
            return _as_key(self.extractor(event))
        return _as_key(event.get(self.attribute))


class ReificationSpec(BaseModel):
    """A compound entity type built from co-occurring base entity types."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    constituents: tuple[str, ...] = Field(min_length=2)
    prune_parallel: bool = False

    @model_validator(mode="after")
    def unique_constituents(self) -> ReificationSpec:
        if len(set(self.constituents)) != len(self.constituents):
            raise ValueError(f"Reification {self.name!r} lists a constituent type twice")
        return self


class ClassifierSpec(BaseModel):
    """A classification dimension.

    The class key is the value of ``attributes`` (joined with ``+`` when more
    than one) or the result of ``key_fn``. ``perspectives`` and
    ``exclude_perspectives`` scope which entity types are aggregated along
    this dimension.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    attributes: tuple[str, ...] = ()
    key_fn: KeyFunction | None = Field(default=None, exclude=True)
    perspectives: tuple[str, ...] | None = None
    exclude_perspectives: tuple[str, ...] = ()

    @model_validator(mode="after")
    def require_key_source(self) -> ClassifierSpec:
        if not self.attributes and self.key_fn is None:
            raise ValueError(f"Classifier {self.name!r} needs 'attributes' or a key function")
        return self

    def class_key(self, event: Event) -> str | None:
        if self.key_fn is not None:
            return _as_key(self.key_fn(event))
        values = [event.get(attr) for attr in self.attributes]
        if any(v is None for v in values):
            return None
        return "+".join(str(v) for v in values)

    def applies_to(self, entity_type: str) -> bool:
        if entity_type in self.exclude_perspectives:
            return False
        return self.perspectives is None or entity_type in self.perspectives


class PipelineConfig(BaseModel):
    """Complete configuration of a graph construction run."""

    model_config = ConfigDict(frozen=True)

    columns: ColumnMapping = ColumnMapping()
    filters: tuple[Condition, ...] = ()
    entity_types: tuple[EntityTypeSpec, ...] = Field(min_length=1)
    reifications: tuple[ReificationSpec, ...] = ()
    classifiers: tuple[ClassifierSpec, ...] = ()

    @model_validator(mode="after")
    def validate_references(self) -> PipelineConfig:
        base_names = [spec.name for spec in self.entity_types]
        if len(set(base_names)) != len(base_names):
            raise ValueError("Entity type names must be unique")

        seen = set(base_names)
        for spec in self.reifications:
            if spec.name in seen:
                raise ValueError(f"Reification name {spec.name!r} collides with another entity type")
            seen.add(spec.name)
            unknown = [c for c in spec.constituents if c not in base_names]
            if unknown:
                raise ValueError(f"Reification {spec.name!r} references unknown base types {unknown}")

        dimension_names = [spec.name for spec in self.classifiers]
        if len(set(dimension_names)) != len(dimension_names):
            raise ValueError("Classifier names must be unique")
        for spec in self.classifiers:
            scoped = set(spec.perspectives or ()) | set(spec.exclude_perspectives)
            unknown = sorted(scoped - seen)
            if unknown:
                raise ValueError(f"Classifier {spec.name!r} references unknown perspectives {unknown}")
        return self

    @property
    def perspectives(self) -> list[str]:
        """All entity types, base first, in configuration order."""
        return [spec.name for spec in self.entity_types] + [spec.name for spec in self.reifications]

    def reification(self, name: str) -> ReificationSpec | None:
        for spec in self.reifications:
            if spec.name == name:
                return spec
        return None


def parse_pipeline_config(data: dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from a plain dict (e.g. parsed YAML).

    Raises:
        ConfigurationError: If the data does not describe a valid configuration.
    """
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    """Load and validate a pipeline configuration from a YAML file."""
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read pipeline configuration {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Pipeline configuration {path} must be a mapping")

    config = parse_pipeline_config(data)
    logger.debug(
        "Loaded pipeline config %s: %d entity types, %d reifications, %d classifiers",
        path,
        len(config.entity_types),
        len(config.reifications),
        len(config.classifiers),
    )
    return config


def load_bundled_config(name: str) -> PipelineConfig:
    """Load one of the configurations shipped in ``ekg/core/configs``."""
    return load_pipeline_config(CONFIGS_DIR / f"{name}.yaml")
