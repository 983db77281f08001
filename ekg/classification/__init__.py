from ekg.classification.classifier import EventClassifier

__all__ = ["EventClassifier"]
