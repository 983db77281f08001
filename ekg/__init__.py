"""EKG: multi-perspective event knowledge graphs from flat event logs."""

__version__ = "0.1.0"
