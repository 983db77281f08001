"""EKG graph ontology.

YAML-driven closed vocabulary of node kinds and relationship kinds, with the
endpoint constraints every edge in a built graph must satisfy.
"""
