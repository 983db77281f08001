"""Correlation: links events to the entities they refer to.

Runs in two passes:
1. Base correlation: per-entity-type extractors map each event to base entities.
2. Reification: co-occurring base entities on an event yield compound entities.
"""

from ekg.correlation.correlator import EntityCorrelator
from ekg.correlation.reifier import EntityReifier

__all__ = ["EntityCorrelator", "EntityReifier"]
