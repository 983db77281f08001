from ekg.aggregation.aggregator import ClassAggregator, filter_dfc

__all__ = ["ClassAggregator", "filter_dfc"]
